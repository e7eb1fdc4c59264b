"""
One-time signing codes.

A code is bound to (signer e-mail, convention). Sending a new code
invalidates the previous unconsumed ones; verifying consumes the code with a
conditional update so that two concurrent submissions cannot both succeed.
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from pfmp.clock import utcnow
from pfmp.config import settings
from pfmp.email_utils import Mailer
from pfmp.modules.conventions.exceptions import OtpDeliveryError, OtpInvalidOrExpired
from pfmp.modules.conventions.models.enums import AuditAction
from pfmp.modules.conventions.repositories.convention_repository import ConventionRepository
from pfmp.modules.conventions.services.audit_log import AuditEntry
from pfmp.modules.otp.models.otp_code import OtpCode
from pfmp.modules.otp.repositories.otp_repository import OtpRepository

logger = logging.getLogger(__name__)


def generate_code(length: int) -> str:
    return f"{secrets.randbelow(10 ** length):0{length}d}"


class OtpAuthService:

    def __init__(self, db: Session, mailer: Optional[Mailer] = None):
        self.repository = OtpRepository(db)
        self.conventions = ConventionRepository(db)
        self.mailer = mailer or Mailer()

    def send(self, email: str, convention_id: int, ip: Optional[str] = None) -> AuditEntry:
        """
        Issues a fresh code and e-mails it.

        Raises ConventionNotFound for an unknown convention and OtpDeliveryError
        when no transport is configured or the e-mail could not be sent; no
        code is kept in that case.
        """
        self.conventions.get(convention_id)
        if not self.mailer.is_configured:
            logger.warning("OTP requested for %s but no SMTP transport is configured", email)
            raise OtpDeliveryError("Aucun service d'envoi d'email n'est configuré, le code ne peut pas être envoyé.")
        now = utcnow()
        self.repository.invalidate_active(email, convention_id, now)
        code = generate_code(settings.OTP_LENGTH)
        self.repository.add(OtpCode(
            email=email,
            convention_id=convention_id,
            code=code,
            expires_at=now + timedelta(minutes=settings.OTP_TTL_MINUTES),
            created_at=now,
        ))

        body = (
            "Bonjour,\n\n"
            f"Voici votre code de sécurité pour signer la convention : {code}\n\n"
            f"Ce code est valable {settings.OTP_TTL_MINUTES} minutes.\n\n"
            "Cordialement."
        )
        try:
            self.mailer.send(email, "Code de signature OTP - Convention PFMP", body)
        except Exception as e:
            self.repository.rollback()
            raise OtpDeliveryError(f"Le code n'a pas pu être envoyé à {email}.") from e
        self.repository.commit()

        entry = AuditEntry(
            action=AuditAction.OTP_SENT,
            actor_email=email,
            date=now,
            ip=ip,
            details="Code envoyé par email",
        )
        self.conventions.append_audit(convention_id, [entry])
        logger.info("OTP sent to %s for convention %s", email, convention_id)
        return entry

    def _match(self, email: str, code: Optional[str], convention_id: Optional[int], now) -> OtpCode:
        code = (code or "").strip()
        otp = self.repository.find_active(email, now, convention_id)
        if otp is None:
            raise OtpInvalidOrExpired()
        if convention_id is None and code:
            # Open codes may exist on several conventions.
            otp = self.repository.find_active(email, now, code=code) or otp
        if not secrets.compare_digest(otp.code.encode(), code.encode()):
            attempts = self.repository.register_failure(otp.id, settings.OTP_MAX_ATTEMPTS, now)
            logger.warning("Wrong OTP for %s (attempt %s)", email, attempts)
            raise OtpInvalidOrExpired()
        return otp

    def check(self, email: str, code: str, convention_id: Optional[int] = None):
        """Raises OtpInvalidOrExpired unless ``code`` is active; nothing is consumed."""
        self._match(email, code, convention_id, utcnow())

    def verify(self, email: str, code: str, convention_id: Optional[int] = None,
               ip: Optional[str] = None, record: bool = True, commit: bool = True) -> AuditEntry:
        """
        Consumes the active code of ``email`` and returns the OTP_VALIDATED
        entry. With ``record`` the entry is also appended to the convention
        trail.

        The signing flow passes ``record=False, commit=False``: consumption
        then rides on the signature transaction and the entry is written with
        the signature, so a failed write leaves the code usable.

        Every failure raises the same OtpInvalidOrExpired.
        """
        now = utcnow()
        otp = self._match(email, code, convention_id, now)
        if not self.repository.consume(otp.id, now, commit=commit):
            raise OtpInvalidOrExpired()

        entry = AuditEntry(
            action=AuditAction.OTP_VALIDATED,
            actor_email=email,
            date=now,
            ip=ip,
            details="Code OTP validé avec succès",
        )
        if record:
            self.conventions.append_audit(otp.convention_id, [entry])
        return entry
