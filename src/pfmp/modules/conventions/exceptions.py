from dataclasses import dataclass, field
from typing import List, Optional, Tuple


class ConventionError(Exception):
    """Base error of the convention workflow; carries the HTTP status to answer with."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConventionNotFound(ConventionError):
    status_code = 404

    def __init__(self, convention_id):
        super().__init__(f"Convention {convention_id} introuvable")
        self.convention_id = convention_id


class ConventionLocked(ConventionError):
    """A canonical field was edited on a finalized document."""
    status_code = 409


class SignError(ConventionError):
    """Any refusal of a signing attempt."""


class IdentityMismatch(SignError):
    status_code = 403

    def __init__(self, caller_email: str, expected_email: Optional[str]):
        super().__init__(
            f"L'email de votre compte ({caller_email}) ne correspond pas à l'email inscrit "
            f"dans la convention ({expected_email or 'non renseigné'}). "
            "Vous ne pouvez pas signer ce document."
        )
        self.caller_email = caller_email
        self.expected_email = expected_email


class InvalidTransition(SignError):
    status_code = 409


class EmptySignature(SignError):
    status_code = 422

    def __init__(self, message: str = "Veuillez signer avant de valider."):
        super().__init__(message)


class OtpInvalidOrExpired(SignError):
    status_code = 400

    def __init__(self):
        super().__init__("Code incorrect ou expiré")


class OtpDeliveryError(ConventionError):
    status_code = 502


class PersistenceFailure(SignError):
    """The store failed after the guards passed; nothing can be assumed recorded."""
    status_code = 503


class ConcurrentModification(PersistenceFailure):
    """Another writer changed the convention between read and write."""
    status_code = 409


@dataclass
class BulkSignReport:
    """Outcome of a bulk signing request, one entry per document."""
    requested: int
    signed: int = 0
    signed_ids: List[int] = field(default_factory=list)
    failures: List[Tuple[int, str]] = field(default_factory=list)


class BulkPartialFailure(SignError):
    """Some documents of a bulk request were not signed; the others stay signed."""
    status_code = 207

    def __init__(self, report):
        super().__init__(
            f"{report.signed} convention(s) signée(s) sur {report.requested}, "
            f"{len(report.failures)} échec(s)"
        )
        self.report = report


class ReminderCooldown(ConventionError):
    status_code = 429


class UneditableField(ConventionError):
    status_code = 422


class CorrectionNotAllowed(ConventionError):
    """E-mail correction requested for a role whose address did not bounce."""
    status_code = 409


class AccessDenied(ConventionError):
    status_code = 403
