from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.email_utils import Mailer
from pfmp.request_utils import get_client_ip
from pfmp.modules.auth.controllers.auth_controller import get_identity
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.exceptions import IdentityMismatch
from pfmp.modules.otp.services.otp_service import OtpAuthService
from pfmp.modules.otp.schemas import (
    OtpSendRequest, OtpVerifyRequest, OtpSendResponse, OtpVerifyResponse
)

router = APIRouter(prefix="/otp", tags=["otp"])


def get_mailer() -> Mailer:
    return Mailer()


def get_otp_service(db: Session = Depends(get_db), mailer: Mailer = Depends(get_mailer)) -> OtpAuthService:
    return OtpAuthService(db, mailer)


def _check_caller(identity: Identity, email: str):
    # A code may only be requested or used for one's own address.
    if not identity.is_privileged and not identity.matches(email):
        raise IdentityMismatch(identity.email, email)


@router.post("/send", response_model=OtpSendResponse)
def send_otp(
    payload: OtpSendRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    service: OtpAuthService = Depends(get_otp_service),
):
    _check_caller(identity, payload.email)
    service.send(payload.email, payload.convention_id, ip=get_client_ip(request))
    return OtpSendResponse()


@router.post("/verify", response_model=OtpVerifyResponse, response_model_by_alias=True)
def verify_otp(
    payload: OtpVerifyRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    service: OtpAuthService = Depends(get_otp_service),
):
    _check_caller(identity, payload.email)
    entry = service.verify(
        payload.email, payload.code, convention_id=payload.convention_id, ip=get_client_ip(request)
    )
    return {"success": True, "auditLog": entry.to_dict()}
