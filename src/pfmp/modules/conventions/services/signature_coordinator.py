"""
One signing attempt, end to end.

identity guard -> method check (canvas or one-time code) -> transition
pre-check -> pending fields saved -> signature rows, audit entries, status,
certificate hash and the consumed one-time code written in a single
transaction.

Every refusal raises a SignError subclass before anything is written.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from pfmp.clock import utcnow
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.exceptions import (
    BulkPartialFailure, BulkSignReport, ConcurrentModification, ConventionError, IdentityMismatch,
    InvalidTransition
)
from pfmp.modules.conventions.models.attestation import Attestation
from pfmp.modules.conventions.models.convention import Convention
from pfmp.modules.conventions.models.enums import (
    AuditAction, ConventionStatus, Role, SignatureMethod
)
from pfmp.modules.conventions.models.signature import ConventionSignature
from pfmp.modules.conventions.repositories.convention_repository import ConventionRepository
from pfmp.modules.conventions.services.audit_log import AuditEntry, AuditLog
from pfmp.modules.conventions.services.calculations import calculate_effective_days
from pfmp.modules.conventions.services.convention_service import validate_changes
from pfmp.modules.conventions.services.signature_images import (
    certified_signature_image, generate_signature_code, require_drawn_signature
)
from pfmp.modules.conventions.services.state_machine import ConventionStateMachine
from pfmp.modules.notifications.services.notification_service import NotificationService
from pfmp.modules.otp.services.otp_service import OtpAuthService
from pfmp.modules.verification.services.verification_service import (
    ATTESTATION, VerificationReference, VerificationTokenService
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class ConfirmedIdentity:
    """Identity a legal representative confirms before signing."""
    name: str
    email: str
    phone: Optional[str] = None


@dataclass
class SignaturePayload:
    image: Optional[str] = None
    otp_code: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    confirmed_identity: Optional[ConfirmedIdentity] = None


@dataclass(frozen=True)
class SignOutcome:
    convention: Convention
    status: ConventionStatus
    signed_roles: Tuple[Role, ...]
    codes: Dict[Role, str]
    audit_entries: Tuple[AuditEntry, ...]
    verification: VerificationReference


class SignatureCoordinator:

    def __init__(
        self,
        db: Session,
        otp_service: Optional[OtpAuthService] = None,
        verification: Optional[VerificationTokenService] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.repository = ConventionRepository(db)
        self.otp_service = otp_service or OtpAuthService(db)
        self.verification = verification or VerificationTokenService()
        self.max_attempts = max_attempts

    # Guards

    @staticmethod
    def registered_legal_rep_emails(convention: Convention) -> set:
        emails = {rep.get("email") for rep in (convention.legal_representatives or []) if rep.get("email")}
        if convention.legal_rep_email:
            emails.add(convention.legal_rep_email)
        return {email.strip().lower() for email in emails}

    def check_identity(self, convention: Convention, role: Role, identity: Identity,
                       confirmed: Optional[ConfirmedIdentity] = None):
        """Raises IdentityMismatch unless ``identity`` may sign as ``role``."""
        if identity.is_privileged:
            return
        if role is Role.PARENT:
            registered = self.registered_legal_rep_emails(convention)
            if confirmed is None or not confirmed.name.strip():
                raise IdentityMismatch(identity.email, convention.legal_rep_email)
            if confirmed.email.strip().lower() not in registered or not identity.matches(confirmed.email):
                raise IdentityMismatch(confirmed.email, convention.legal_rep_email)
            return
        expected = convention.party_email(role)
        if not identity.matches(expected):
            raise IdentityMismatch(identity.email, expected)

    @staticmethod
    def roles_for(role: Role, dual_sign: bool, convention: Convention) -> List[Role]:
        if role is Role.STUDENT:
            raise InvalidTransition("L'élève signe la convention lors de sa soumission.")
        if not dual_sign:
            return [role]
        if role.partner is None:
            raise InvalidTransition("La double signature est réservée à l'entreprise et au tuteur.")
        if role.partner in convention.signed_roles:
            raise InvalidTransition(
                f"Le rôle {role.partner.label} a déjà signé, la double signature n'est plus possible."
            )
        return [role, role.partner]

    # Signing

    def sign(
        self,
        convention_id: int,
        role: Role,
        method: SignatureMethod,
        payload: SignaturePayload,
        identity: Identity,
        dual_sign: bool = False,
        ip: Optional[str] = None,
    ) -> SignOutcome:
        convention = self.repository.get(convention_id)
        self.check_identity(convention, role, identity, payload.confirmed_identity)
        roles = self.roles_for(role, dual_sign, convention)
        ConventionStateMachine.apply_many(roles, convention)

        changes = validate_changes(convention, payload.fields)

        image = None
        if method is SignatureMethod.OTP:
            self.otp_service.check(identity.email, payload.otp_code, convention_id=convention_id)
        else:
            image = require_drawn_signature(payload.image)

        if changes:
            self._with_retries(lambda: self.repository.update(convention_id, changes))

        def attempt():
            current = self.repository.get(convention_id)
            # Re-guard on the fresh read; a concurrent writer may have signed.
            steps = ConventionStateMachine.apply_many(roles, current)
            otp_entry = None
            signature_image = image
            if method is SignatureMethod.OTP:
                # Consumed in the signature transaction; rolled back with it.
                otp_entry = self.otp_service.verify(
                    identity.email, payload.otp_code, convention_id=convention_id, ip=ip,
                    record=False, commit=False,
                )
                signature_image = certified_signature_image(identity.email, otp_entry.date, identity.name)
            now = utcnow()
            rows = [
                ConventionSignature(
                    cycle=current.cycle or 1,
                    role=signed_role,
                    method=method,
                    image=signature_image,
                    code=generate_signature_code(),
                    signed_at=now,
                )
                for signed_role, _ in steps
            ]
            entries = [otp_entry] if otp_entry else []
            entries += [
                AuditLog.signing_entry(signed_role, identity.email, ip=ip, on_behalf=signed_role is not role, date=now)
                for signed_role, _ in steps
            ]
            self.repository.save_signatures(
                current, rows, steps[-1][1].status, entries, finalize=self._finalize
            )
            return current, rows, entries

        convention, rows, entries = self._with_retries(attempt)
        logger.info(
            "Convention %s signed by %s as %s -> %s",
            convention_id, identity.email, "+".join(r.value for r in roles), convention.status.value,
        )
        return SignOutcome(
            convention=convention,
            status=convention.status,
            signed_roles=tuple(roles),
            codes={row.role: row.code for row in rows},
            audit_entries=tuple(entries),
            verification=self.verification.generate_verification_url(convention),
        )

    def _finalize(self, convention: Convention) -> List:
        convention.certificate_hash = self.verification.generate_verification_url(convention).hash_display
        pending = ConventionStateMachine.pending_roles(convention)
        return NotificationService.build_status_change(convention, pending)

    def _with_retries(self, operation: Callable):
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation()
            except ConcurrentModification:
                if attempt == self.max_attempts:
                    raise
                logger.info("Concurrent write detected, retrying (%s/%s)", attempt, self.max_attempts)

    def bulk_sign(self, convention_ids: Sequence[int], role: Role, image: str,
                  identity: Identity, ip: Optional[str] = None) -> BulkSignReport:
        """
        Applies one canvas signature to several conventions.

        Each convention is signed on its own; a failure does not undo the
        conventions already signed. Raises BulkPartialFailure with the report
        when at least one convention failed.
        """
        require_drawn_signature(image)
        report = BulkSignReport(requested=len(convention_ids))
        for convention_id in convention_ids:
            try:
                self.sign(convention_id, role, SignatureMethod.CANVAS, SignaturePayload(image=image), identity, ip=ip)
            except ConventionError as e:
                logger.warning("Bulk signing skipped convention %s: %s", convention_id, e.message)
                report.failures.append((convention_id, e.message))
                continue
            report.signed += 1
            report.signed_ids.append(convention_id)
        if report.failures:
            raise BulkPartialFailure(report)
        return report

    # Rejection

    def reject(self, convention_id: int, identity: Identity, reason: str, ip: Optional[str] = None) -> Convention:
        convention = self.repository.get(convention_id)
        self.check_identity(convention, Role.TEACHER, identity)
        if not reason or not reason.strip():
            raise InvalidTransition("Le motif du rejet est obligatoire.")
        ConventionStateMachine.reject(Role.TEACHER, convention)

        def attempt():
            current = self.repository.get(convention_id)
            state = ConventionStateMachine.reject(Role.TEACHER, current)
            now = utcnow()
            current.status = state.status
            current.feedbacks = list(current.feedbacks or []) + [{
                "date": now.isoformat() + "Z",
                "author": identity.email,
                "cycle": current.cycle or 1,
                "reason": reason.strip(),
            }]
            entry = AuditEntry(
                action=AuditAction.REJECTED,
                actor_email=identity.email,
                date=now,
                ip=ip,
                details=reason.strip(),
                role=Role.TEACHER,
            )
            notifications = NotificationService.build_status_change(current, [])
            return self.repository.save(current, [entry], pending=notifications)

        convention = self._with_retries(attempt)
        logger.info("Convention %s rejected by %s", convention_id, identity.email)
        return convention

    # Attestation

    def sign_attestation(
        self,
        convention_id: int,
        identity: Identity,
        image: str,
        signer_name: str,
        signer_function: Optional[str] = None,
        competences: Optional[str] = None,
        activities: Optional[str] = None,
        gratification: Optional[str] = None,
        signed_place: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> Attestation:
        """Unsigned -> signed, once, by the company representative or the tutor."""
        convention = self.repository.get(convention_id)
        if convention.status is not ConventionStatus.VALIDATED_HEAD:
            raise InvalidTransition("L'attestation ne peut être signée qu'une fois la convention validée.")
        if not identity.is_privileged and not (
            identity.matches(convention.company_rep_email) or identity.matches(convention.tutor_email)
        ):
            raise IdentityMismatch(identity.email, convention.company_rep_email)
        if convention.attestation is not None and convention.attestation.signed:
            raise InvalidTransition("L'attestation est déjà signée.")
        image = require_drawn_signature(image)

        def attempt():
            current = self.repository.get(convention_id)
            if current.attestation is not None and current.attestation.signed:
                raise InvalidTransition("L'attestation est déjà signée.")
            now = utcnow()
            attestation = current.attestation or Attestation()
            attestation.signed = True
            attestation.signed_at = now
            attestation.signer_name = signer_name
            attestation.signer_function = signer_function
            attestation.signer_email = identity.email
            attestation.signature_image = image
            attestation.signature_code = generate_signature_code()
            attestation.competences = competences
            attestation.activities = activities
            attestation.gratification = gratification
            attestation.signed_place = signed_place
            attestation.total_days = calculate_effective_days(
                current.start_date, current.end_date, current.schedule, current.absences
            )
            current.attestation = attestation
            attestation.hash = self.verification.generate_verification_url(current, ATTESTATION).hash_display
            entry = AuditEntry(
                action=AuditAction.ATTESTATION_SIGNED,
                actor_email=identity.email,
                date=now,
                ip=ip,
                details=f"Attestation signée par {signer_name}",
            )
            self.repository.save(current, [entry])
            return current.attestation

        attestation = self._with_retries(attempt)
        logger.info("Attestation of convention %s signed by %s", convention_id, identity.email)
        return attestation