# pfmp/modules/conventions/controllers/signature_controller.py
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.request_utils import get_client_ip
from pfmp.modules.auth.controllers.auth_controller import get_identity
from pfmp.modules.auth.dependencies import require_permission
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.services.audit_log import AuditLog
from pfmp.modules.conventions.services.convention_service import ConventionService
from pfmp.modules.conventions.services.signature_coordinator import (
    ConfirmedIdentity, SignatureCoordinator, SignaturePayload
)
from pfmp.modules.conventions.schemas import (
    AttestationOut, AttestationSignRequest, BulkSignRequest, BulkSignResponse, ConventionResponse,
    RejectRequest, SignRequest, SignResponse
)
from pfmp.modules.verification.services.verification_service import KINDS, VerificationTokenService

router = APIRouter(prefix="/conventions", tags=["signatures"])


def get_coordinator(db: Session = Depends(get_db)) -> SignatureCoordinator:
    return SignatureCoordinator(db)


@router.post("/bulk-sign", response_model=BulkSignResponse)
def bulk_sign(
    payload: BulkSignRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("sign")),
    coordinator: SignatureCoordinator = Depends(get_coordinator),
):
    """
    Applies one signature to several conventions. Each one is signed on its
    own; partial failures answer 207 with the report.
    """
    report = coordinator.bulk_sign(
        payload.ids, payload.role, payload.signature_image, identity, ip=get_client_ip(request)
    )
    return BulkSignResponse(requested=report.requested, signed=report.signed, signed_ids=report.signed_ids)


@router.post("/{convention_id}/sign", response_model=SignResponse)
def sign_convention(
    convention_id: int,
    payload: SignRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("sign")),
    coordinator: SignatureCoordinator = Depends(get_coordinator),
):
    confirmed = None
    if payload.confirmed_identity is not None:
        confirmed = ConfirmedIdentity(**payload.confirmed_identity.model_dump())
    outcome = coordinator.sign(
        convention_id,
        payload.role,
        payload.method,
        SignaturePayload(
            image=payload.signature_image,
            otp_code=payload.otp_code,
            fields=payload.fields.changes() if payload.fields else {},
            confirmed_identity=confirmed,
        ),
        identity,
        dual_sign=payload.dual_sign,
        ip=get_client_ip(request),
    )
    return SignResponse(
        status=outcome.status,
        signed_roles=list(outcome.signed_roles),
        codes={role.value: code for role, code in outcome.codes.items()},
        audit_entries=[entry.to_dict() for entry in outcome.audit_entries],
        verification_url=outcome.verification.url,
        hash_display=outcome.verification.hash_display,
    )


@router.post("/{convention_id}/reject", response_model=ConventionResponse)
def reject_convention(
    convention_id: int,
    payload: RejectRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("reject")),
    coordinator: SignatureCoordinator = Depends(get_coordinator),
):
    convention = coordinator.reject(convention_id, identity, payload.reason, ip=get_client_ip(request))
    return ConventionResponse.from_convention(convention)


@router.post("/{convention_id}/attestation/sign", response_model=AttestationOut)
def sign_attestation(
    convention_id: int,
    payload: AttestationSignRequest,
    request: Request,
    identity: Identity = Depends(get_identity),
    _user=Depends(require_permission("sign_attestation")),
    coordinator: SignatureCoordinator = Depends(get_coordinator),
):
    return coordinator.sign_attestation(
        convention_id,
        identity,
        payload.signature_image,
        payload.signer_name,
        signer_function=payload.signer_function,
        competences=payload.competences,
        activities=payload.activities,
        gratification=payload.gratification,
        signed_place=payload.signed_place,
        ip=get_client_ip(request),
    )


@router.get("/{convention_id}/render")
def render_context(
    convention_id: int,
    kind: str = Query("convention", pattern="^(convention|attestation)$"),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Document, QR code and short hash handed to the PDF layer"""
    convention = ConventionService(db).get(convention_id, identity)
    document = ConventionResponse.from_convention(convention).model_dump(mode="json")
    document["auditTable"] = AuditLog(convention).as_table()
    return VerificationTokenService().render_context(convention, kind if kind in KINDS else "convention", document)
