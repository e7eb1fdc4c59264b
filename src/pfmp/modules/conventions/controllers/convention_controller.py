# pfmp/modules/conventions/controllers/convention_controller.py
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.request_utils import get_client_ip
from pfmp.modules.auth.controllers.auth_controller import get_identity
from pfmp.modules.auth.dependencies import require_permission
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.services.convention_service import ConventionService
from pfmp.modules.conventions.schemas import (
    AbsenceRequest, ConventionCreate, ConventionResponse, ConventionUpdate, EmailCorrectionRequest,
    InvalidEmailRequest, ReminderRequest, ResubmitRequest, TrackingTeacherRequest
)
from pfmp.modules.mission_orders.schemas import MissionOrderResponse

router = APIRouter(prefix="/conventions", tags=["conventions"])


def get_convention_service(db: Session = Depends(get_db)) -> ConventionService:
    return ConventionService(db)


@router.post("/", response_model=ConventionResponse, status_code=status.HTTP_201_CREATED)
def submit_convention(
    payload: ConventionCreate,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("submit")),
    service: ConventionService = Depends(get_convention_service),
):
    """Submits a convention signed by the student"""
    convention = service.submit(
        payload.profile_data(), identity, payload.student_signature, ip=get_client_ip(request)
    )
    return ConventionResponse.from_convention(convention)


@router.get("/", response_model=List[ConventionResponse])
def list_conventions(
    identity: Identity = Depends(get_identity),
    service: ConventionService = Depends(get_convention_service),
):
    return [ConventionResponse.from_convention(c) for c in service.list_for(identity)]


@router.get("/{convention_id}", response_model=ConventionResponse)
def get_convention(
    convention_id: int,
    identity: Identity = Depends(get_identity),
    service: ConventionService = Depends(get_convention_service),
):
    return ConventionResponse.from_convention(service.get(convention_id, identity))


@router.patch("/{convention_id}", response_model=ConventionResponse)
def update_convention(
    convention_id: int,
    payload: ConventionUpdate,
    identity: Identity = Depends(get_identity),
    service: ConventionService = Depends(get_convention_service),
):
    """Edits the convention; canonical fields are locked once validated"""
    convention = service.update_fields(convention_id, payload.changes(), identity)
    return ConventionResponse.from_convention(convention)


@router.post("/{convention_id}/resubmit", response_model=ConventionResponse)
def resubmit_convention(
    convention_id: int,
    payload: ResubmitRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("resubmit")),
    service: ConventionService = Depends(get_convention_service),
):
    changes = payload.changes.changes() if payload.changes else None
    convention = service.resubmit(
        convention_id, identity, changes, payload.student_signature, ip=get_client_ip(request)
    )
    return ConventionResponse.from_convention(convention)


@router.post("/{convention_id}/invalid-emails", response_model=ConventionResponse)
def flag_invalid_email(
    convention_id: int,
    payload: InvalidEmailRequest,
    _user=Depends(require_permission("correct_email")),
    service: ConventionService = Depends(get_convention_service),
):
    return ConventionResponse.from_convention(service.mark_email_invalid(convention_id, payload.role))


@router.post("/{convention_id}/email-correction", response_model=ConventionResponse)
def correct_email(
    convention_id: int,
    payload: EmailCorrectionRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("correct_email")),
    service: ConventionService = Depends(get_convention_service),
):
    convention = service.correct_email(
        convention_id, payload.role, payload.email, identity, ip=get_client_ip(request)
    )
    return ConventionResponse.from_convention(convention)


@router.post("/{convention_id}/reminders")
def send_reminder(
    convention_id: int,
    payload: ReminderRequest,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("remind")),
    service: ConventionService = Depends(get_convention_service),
):
    roles = service.send_reminder(convention_id, identity, payload.role)
    return {"message": "Relance envoyée", "roles": [role.value for role in roles]}


@router.post("/{convention_id}/tracking-teacher", response_model=MissionOrderResponse,
             status_code=status.HTTP_201_CREATED)
def assign_tracking_teacher(
    convention_id: int,
    payload: TrackingTeacherRequest,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("assign_tracking")),
    service: ConventionService = Depends(get_convention_service),
):
    return service.assign_tracking_teacher(
        convention_id, payload.teacher_email, identity,
        school_address=payload.school_address, distance_km=payload.distance_km,
    )


@router.post("/{convention_id}/absences", response_model=ConventionResponse)
def report_absence(
    convention_id: int,
    payload: AbsenceRequest,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("report_absence")),
    service: ConventionService = Depends(get_convention_service),
):
    convention = service.report_absence(convention_id, payload.model_dump(), identity)
    return ConventionResponse.from_convention(convention)
