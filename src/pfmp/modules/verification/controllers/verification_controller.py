from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from pfmp.database import get_db
from pfmp.modules.conventions.repositories.convention_repository import ConventionRepository
from pfmp.modules.verification.schemas import CodeLookupResponse, VerificationResponse
from pfmp.modules.verification.services.verification_service import VerificationTokenService

router = APIRouter(prefix="/verify", tags=["verification"])


def get_verification_service() -> VerificationTokenService:
    return VerificationTokenService()


@router.get("", response_model=VerificationResponse)
def verify_document(
    data: str = Query(..., min_length=1),
    sig: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    service: VerificationTokenService = Depends(get_verification_service),
):
    """Public check of the URL printed as a QR code on a rendered document"""
    result = service.verify_reference(data, sig, ConventionRepository(db))
    return VerificationResponse(
        valid=result.valid,
        reason=result.reason,
        kind=result.kind,
        convention_id=result.convention_id,
        hash_display=service.hash_display(sig) if result.valid else None,
        payload=result.payload if result.valid else None,
    )


@router.get("/code/{code}", response_model=CodeLookupResponse)
def lookup_code(
    code: str,
    db: Session = Depends(get_db),
    service: VerificationTokenService = Depends(get_verification_service),
):
    """Finds a convention from a signature code or a printed hash"""
    convention = service.find_by_code(ConventionRepository(db), code)
    if convention is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Aucun document ne correspond à ce code"
        )
    attestation = convention.attestation
    return CodeLookupResponse(
        convention_id=convention.id,
        status=convention.status.value,
        student=convention.student_full_name,
        company=convention.company_name,
        start_date=convention.start_date,
        end_date=convention.end_date,
        certificate_hash=convention.certificate_hash,
        attestation_hash=attestation.hash if attestation else None,
    )
