from .convention_schemas import (
    ConventionCreate, ConventionUpdate, ConventionResponse, SignRequest, SignResponse,
    BulkSignRequest, BulkSignResponse, RejectRequest, ResubmitRequest, EmailCorrectionRequest,
    InvalidEmailRequest, ReminderRequest, TrackingTeacherRequest, AbsenceRequest,
    AttestationSignRequest, AttestationOut, ConfirmedIdentityIn, AuditLogOut
)

__all__ = [
    "ConventionCreate", "ConventionUpdate", "ConventionResponse", "SignRequest", "SignResponse",
    "BulkSignRequest", "BulkSignResponse", "RejectRequest", "ResubmitRequest", "EmailCorrectionRequest",
    "InvalidEmailRequest", "ReminderRequest", "TrackingTeacherRequest", "AbsenceRequest",
    "AttestationSignRequest", "AttestationOut", "ConfirmedIdentityIn", "AuditLogOut",
]
