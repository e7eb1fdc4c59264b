from enum import Enum as PyEnum


class ConventionStatus(PyEnum):
    SUBMITTED = "SUBMITTED"
    SIGNED_PARENT = "SIGNED_PARENT"
    VALIDATED_TEACHER = "VALIDATED_TEACHER"
    SIGNED_COMPANY = "SIGNED_COMPANY"
    SIGNED_TUTOR = "SIGNED_TUTOR"
    VALIDATED_HEAD = "VALIDATED_HEAD"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is ConventionStatus.VALIDATED_HEAD


class Role(PyEnum):
    """Signing party of a convention.

    Every per-role attribute lives here: the signature key used in the
    signature map, the convention column holding the party e-mail and the
    label shown to users.
    """

    STUDENT = ("student", "student", "student_email", "Élève")
    PARENT = ("parent", "parent", "legal_rep_email", "Représentant légal")
    TEACHER = ("teacher", "teacher", "teacher_email", "Enseignant référent")
    COMPANY_HEAD = ("company_head", "company", "company_rep_email", "Représentant de l'entreprise")
    TUTOR = ("tutor", "tutor", "tutor_email", "Tuteur")
    SCHOOL_HEAD = ("school_head", "head", "school_head_email", "Chef d'établissement")

    def __new__(cls, value, signature_key, email_field, label):
        obj = object.__new__(cls)
        obj._value_ = value
        obj.signature_key = signature_key
        obj.email_field = email_field
        obj.label = label
        return obj

    @property
    def partner(self):
        """The other half of the commutative company/tutor pair, if any."""
        if self is Role.COMPANY_HEAD:
            return Role.TUTOR
        if self is Role.TUTOR:
            return Role.COMPANY_HEAD
        return None


class AuditAction(PyEnum):
    CREATED = "CREATED"
    SIGNED = "SIGNED"
    OTP_SENT = "OTP_SENT"
    OTP_VALIDATED = "OTP_VALIDATED"
    REJECTED = "REJECTED"
    RESUBMITTED = "RESUBMITTED"
    EMAIL_CORRECTED = "EMAIL_CORRECTED"
    ATTESTATION_SIGNED = "ATTESTATION_SIGNED"


class SignatureMethod(PyEnum):
    CANVAS = "canvas"
    OTP = "otp"
