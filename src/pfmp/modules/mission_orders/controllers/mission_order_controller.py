from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.modules.auth.controllers.auth_controller import get_identity
from pfmp.modules.auth.dependencies import require_permission
from pfmp.modules.auth.identity import Identity
from pfmp.modules.mission_orders.services.mission_order_service import MissionOrderService
from pfmp.modules.mission_orders.schemas import MissionOrderResponse, MissionOrderSignRequest

router = APIRouter(prefix="/mission-orders", tags=["mission orders"])


def get_mission_order_service(db: Session = Depends(get_db)) -> MissionOrderService:
    return MissionOrderService(db)


@router.get("/", response_model=List[MissionOrderResponse])
def list_mission_orders(
    identity: Identity = Depends(get_identity),
    service: MissionOrderService = Depends(get_mission_order_service),
):
    """Orders of the tracking teacher, or of the school head's conventions"""
    return service.list_for(identity)


@router.post("/sign")
def sign_mission_orders(
    payload: MissionOrderSignRequest,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("sign_mission_order")),
    service: MissionOrderService = Depends(get_mission_order_service),
):
    report = service.sign(
        payload.ids, identity, payload.signature_image,
        signer_name=payload.signer_name, max_distance_km=payload.max_distance_km,
    )
    return {"requested": report.requested, "signed": report.signed, "signedIds": report.signed_ids, "failures": []}
