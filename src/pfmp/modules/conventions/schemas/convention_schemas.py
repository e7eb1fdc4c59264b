from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from pfmp.modules.conventions.models.enums import ConventionStatus, Role, SignatureMethod
from pfmp.modules.conventions.services.audit_log import AuditLog
from pfmp.modules.conventions.services.state_machine import ConventionStateMachine

AddressInput = Optional[Union[str, Dict[str, Any]]]


class LegalRepresentativeIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    address: AddressInput = None


class ConventionCreate(BaseModel):
    """Submission by the student; the signature image is mandatory."""
    student_first_name: str
    student_last_name: str
    student_email: EmailStr
    student_birth_date: Optional[date] = None
    student_class: Optional[str] = None
    student_address: AddressInput = None
    # legacy flat address of the student
    address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None

    legal_rep_first_name: Optional[str] = None
    legal_rep_last_name: Optional[str] = None
    legal_rep_email: Optional[EmailStr] = None
    legal_rep_phone: Optional[str] = None
    legal_representatives: Optional[List[LegalRepresentativeIn]] = None

    school_name: Optional[str] = None
    school_head_name: Optional[str] = None
    school_head_email: Optional[EmailStr] = None
    teacher_name: Optional[str] = None
    teacher_email: Optional[EmailStr] = None

    company_name: str
    company_address: AddressInput = None
    company_rep_name: Optional[str] = None
    company_rep_email: Optional[EmailStr] = None
    company_rep_function: Optional[str] = None
    tutor_name: Optional[str] = None
    tutor_email: Optional[EmailStr] = None
    tutor_function: Optional[str] = None

    start_date: date
    end_date: date
    schedule: Dict[str, Dict[str, Optional[str]]] = Field(default_factory=dict)
    activities: Optional[str] = None
    competences: Optional[str] = None
    derogation_justification: Optional[str] = None

    student_signature: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date > self.end_date:
            raise ValueError("La date de fin du stage précède la date de début")
        return self

    def profile_data(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"student_signature"})
        if self.legal_representatives is not None:
            data["legal_representatives"] = [
                rep.model_dump(mode="json") for rep in self.legal_representatives
            ]
        return data


class ConventionUpdate(BaseModel):
    """Partial update; only the fields sent are applied."""
    student_first_name: Optional[str] = None
    student_last_name: Optional[str] = None
    student_class: Optional[str] = None
    company_name: Optional[str] = None
    company_address: Optional[Dict[str, Any]] = None
    company_rep_name: Optional[str] = None
    company_rep_function: Optional[str] = None
    tutor_name: Optional[str] = None
    tutor_function: Optional[str] = None
    teacher_name: Optional[str] = None
    school_name: Optional[str] = None
    school_head_name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    schedule: Optional[Dict[str, Dict[str, Optional[str]]]] = None
    activities: Optional[str] = None
    competences: Optional[str] = None
    derogation_justification: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ConfirmedIdentityIn(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class SignRequest(BaseModel):
    role: Role
    method: SignatureMethod = SignatureMethod.CANVAS
    signature_image: Optional[str] = None
    otp_code: Optional[str] = None
    dual_sign: bool = False
    fields: Optional[ConventionUpdate] = None
    confirmed_identity: Optional[ConfirmedIdentityIn] = None


class BulkSignRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)
    role: Role
    signature_image: str


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ResubmitRequest(BaseModel):
    changes: Optional[ConventionUpdate] = None
    student_signature: Optional[str] = None


class EmailCorrectionRequest(BaseModel):
    role: Role
    email: EmailStr


class InvalidEmailRequest(BaseModel):
    role: Role


class ReminderRequest(BaseModel):
    role: Optional[Role] = None


class TrackingTeacherRequest(BaseModel):
    teacher_email: EmailStr
    school_address: Optional[Dict[str, Any]] = None
    distance_km: Optional[float] = Field(None, ge=0)


class AbsenceRequest(BaseModel):
    date: date
    kind: Literal["absence", "lateness"] = "absence"
    duration: float = Field(..., ge=0, description="Durée en heures")
    reason: Optional[str] = None


class AttestationSignRequest(BaseModel):
    signature_image: str
    signer_name: str = Field(..., min_length=1)
    signer_function: Optional[str] = None
    competences: Optional[str] = None
    activities: Optional[str] = None
    gratification: Optional[str] = None
    signed_place: Optional[str] = None


class AuditLogOut(BaseModel):
    date: str
    action: str
    actorEmail: str
    ip: Optional[str] = None
    details: Optional[str] = None


class AttestationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    signed: bool
    signed_at: Optional[datetime] = None
    signer_name: Optional[str] = None
    signer_function: Optional[str] = None
    signature_code: Optional[str] = None
    competences: Optional[str] = None
    activities: Optional[str] = None
    total_days: Optional[float] = None
    hash: Optional[str] = None


class ConventionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: ConventionStatus
    status_label: str
    est_mineur: bool
    cycle: int
    student_first_name: str
    student_last_name: str
    student_email: str
    student_birth_date: Optional[date] = None
    student_class: Optional[str] = None
    student_address: Optional[Dict[str, Any]] = None
    legal_rep_first_name: Optional[str] = None
    legal_rep_last_name: Optional[str] = None
    legal_rep_email: Optional[str] = None
    legal_rep_phone: Optional[str] = None
    legal_representatives: List[Dict[str, Any]] = Field(default_factory=list)
    school_name: Optional[str] = None
    school_head_name: Optional[str] = None
    school_head_email: Optional[str] = None
    teacher_name: Optional[str] = None
    teacher_email: Optional[str] = None
    tracking_teacher_email: Optional[str] = None
    company_name: str
    company_address: Optional[Dict[str, Any]] = None
    company_rep_name: Optional[str] = None
    company_rep_email: Optional[str] = None
    company_rep_function: Optional[str] = None
    tutor_name: Optional[str] = None
    tutor_email: Optional[str] = None
    tutor_function: Optional[str] = None
    start_date: date
    end_date: date
    schedule: Dict[str, Any] = Field(default_factory=dict)
    absences: List[Dict[str, Any]] = Field(default_factory=list)
    activities: Optional[str] = None
    competences: Optional[str] = None
    derogation_justification: Optional[str] = None
    feedbacks: List[Dict[str, Any]] = Field(default_factory=list)
    invalid_emails: List[str] = Field(default_factory=list)
    certificate_hash: Optional[str] = None
    signatures: Dict[str, Optional[str]] = Field(default_factory=dict)
    audit_logs: List[AuditLogOut] = Field(default_factory=list)
    pending_roles: List[Role] = Field(default_factory=list)
    attestation: Optional[AttestationOut] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_convention(cls, convention) -> "ConventionResponse":
        data = {
            column.key: getattr(convention, column.key)
            for column in convention.__table__.columns
            if column.key in cls.model_fields
        }
        data.update(
            status_label=ConventionStateMachine.status_label(convention),
            signatures=convention.signature_map(),
            audit_logs=[row.to_dict() for row in AuditLog(convention)],
            pending_roles=ConventionStateMachine.pending_roles(convention),
            attestation=AttestationOut.model_validate(convention.attestation) if convention.attestation else None,
            legal_representatives=convention.legal_representatives or [],
            schedule=convention.schedule or {},
            absences=convention.absences or [],
            feedbacks=convention.feedbacks or [],
            invalid_emails=convention.invalid_emails or [],
        )
        return cls.model_validate(data)


class SignResponse(BaseModel):
    status: ConventionStatus
    signed_roles: List[Role]
    codes: Dict[str, str]
    audit_entries: List[AuditLogOut]
    verification_url: str
    hash_display: str


class BulkSignResponse(BaseModel):
    requested: int
    signed: int
    signed_ids: List[int]
    failures: List[Dict[str, Any]] = Field(default_factory=list)
