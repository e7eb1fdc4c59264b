import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.orm import Session

from pfmp.clock import utcnow
from pfmp.config import settings
from pfmp.modules.auth.identity import Identity
from pfmp.modules.conventions.exceptions import (
    AccessDenied, ConventionLocked, CorrectionNotAllowed, IdentityMismatch, InvalidTransition,
    ReminderCooldown, UneditableField
)
from pfmp.modules.conventions.models.convention import Convention
from pfmp.modules.conventions.models.enums import AuditAction, ConventionStatus, Role, SignatureMethod
from pfmp.modules.conventions.models.signature import ConventionSignature
from pfmp.modules.conventions.repositories.convention_repository import ConventionRepository
from pfmp.modules.conventions.services.audit_log import AuditEntry, AuditLog
from pfmp.modules.conventions.services.profile_normalizer import ProfileNormalizer, normalize_schedule
from pfmp.modules.conventions.services.signature_images import (
    generate_signature_code, require_drawn_signature
)
from pfmp.modules.conventions.services.state_machine import ConventionStateMachine
from pfmp.modules.mission_orders.services.mission_order_service import MissionOrderService
from pfmp.modules.notifications.services.notification_service import NotificationService
from pfmp.modules.verification.services.verification_service import VerificationTokenService

logger = logging.getLogger(__name__)

# Free text, editable at any time; not part of the fingerprint.
FREE_TEXT_FIELDS = frozenset({"activities", "competences", "derogation_justification"})

# Fields feeding the fingerprint or the legal content; frozen once VALIDATED_HEAD.
CANONICAL_FIELDS = frozenset({
    "student_first_name", "student_last_name", "student_class",
    "company_name", "company_address", "company_rep_name", "company_rep_function",
    "tutor_name", "tutor_function", "teacher_name", "school_name", "school_head_name",
    "start_date", "end_date", "schedule",
})

EDITABLE_FIELDS = FREE_TEXT_FIELDS | CANONICAL_FIELDS


def validate_changes(convention: Convention, fields: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Checks a partial update against the field policy and returns it normalised.

    Party e-mails and the minor flag are never editable here; canonical fields
    are locked once the convention is finalized.
    """
    changes = dict(fields or {})
    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise UneditableField(f"Champ(s) non modifiable(s) : {', '.join(unknown)}")
    if convention.status.is_terminal:
        locked = sorted(set(changes) & CANONICAL_FIELDS)
        if locked:
            raise ConventionLocked(
                f"La convention est validée, ces champs ne peuvent plus être modifiés : {', '.join(locked)}"
            )
    if "schedule" in changes:
        changes["schedule"] = normalize_schedule(changes["schedule"])
    start = changes.get("start_date", convention.start_date)
    end = changes.get("end_date", convention.end_date)
    if start and end and start > end:
        raise UneditableField("La date de fin du stage précède la date de début.")
    return changes


def is_minor(birth_date: Optional[date], on: date) -> bool:
    if birth_date is None:
        return False
    age = on.year - birth_date.year - ((on.month, on.day) < (birth_date.month, birth_date.day))
    return age < 18


class ConventionService:
    """Lifecycle operations around the signing workflow."""

    def __init__(self, db: Session, verification: Optional[VerificationTokenService] = None):
        self.repository = ConventionRepository(db)
        self.mission_orders = MissionOrderService(db)
        self.verification = verification or VerificationTokenService()

    @staticmethod
    def is_party(convention: Convention, identity: Identity) -> bool:
        return any(identity.matches(convention.party_email(role)) for role in Role) or identity.matches(
            convention.tracking_teacher_email
        )

    def get(self, convention_id: int, identity: Identity) -> Convention:
        convention = self.repository.get(convention_id)
        if not identity.is_privileged and not self.is_party(convention, identity):
            raise AccessDenied("Vous n'avez pas accès à cette convention.")
        return convention

    def list_for(self, identity: Identity) -> List[Convention]:
        if identity.is_privileged:
            return self.repository.list_all()
        return self.repository.list_for_email(identity.email)

    def _certify(self, convention: Convention) -> List:
        convention.certificate_hash = self.verification.generate_verification_url(convention).hash_display
        return NotificationService.build_status_change(convention, ConventionStateMachine.pending_roles(convention))

    def submit(self, data: Mapping[str, Any], identity: Identity, student_image: str,
               ip: Optional[str] = None) -> Convention:
        """
        Creates a convention in SUBMITTED with the student's signature.

        The minor flag is computed here from the birth date and never changes
        afterwards.
        """
        fields = ProfileNormalizer.normalize(data)
        if not identity.is_privileged and not identity.matches(fields.get("student_email")):
            raise IdentityMismatch(identity.email, fields.get("student_email"))
        image = require_drawn_signature(student_image)
        if fields.get("start_date") and fields.get("end_date") and fields["start_date"] > fields["end_date"]:
            raise UneditableField("La date de fin du stage précède la date de début.")

        now = utcnow()
        convention = Convention(
            **fields,
            status=ConventionStatus.SUBMITTED,
            est_mineur=is_minor(fields.get("student_birth_date"), now.date()),
            cycle=1,
            signatures_from_cycle=1,
            created_by_email=identity.email,
        )
        convention.signature_rows.append(ConventionSignature(
            cycle=1,
            role=Role.STUDENT,
            method=SignatureMethod.CANVAS,
            image=image,
            code=generate_signature_code(),
            signed_at=now,
        ))
        entries = [
            AuditEntry(action=AuditAction.CREATED, actor_email=identity.email, date=now, ip=ip,
                       details="Convention soumise"),
            AuditLog.signing_entry(Role.STUDENT, identity.email, ip=ip, date=now),
        ]
        convention = self.repository.add(convention, entries, finalize=self._certify)
        logger.info("Convention %s submitted by %s (mineur=%s)", convention.id, identity.email,
                    convention.est_mineur)
        return convention

    def update_fields(self, convention_id: int, fields: Mapping[str, Any], identity: Identity) -> Convention:
        convention = self.get(convention_id, identity)
        changes = validate_changes(convention, fields)
        if not changes:
            return convention
        return self.repository.update(convention_id, changes)

    def mark_email_invalid(self, convention_id: int, role: Role) -> Convention:
        """Flags the address of ``role`` as bounced, which opens it to correction."""
        convention = self.repository.get(convention_id)
        invalid = list(convention.invalid_emails or [])
        if role.signature_key not in invalid:
            invalid.append(role.signature_key)
        return self.repository.update(convention_id, {"invalid_emails": invalid})

    def correct_email(self, convention_id: int, role: Role, email: str, identity: Identity,
                      ip: Optional[str] = None) -> Convention:
        """Replaces a bounced address. Signatures are left untouched."""
        convention = self.get(convention_id, identity)
        invalid = list(convention.invalid_emails or [])
        if role.signature_key not in invalid:
            raise CorrectionNotAllowed(
                f"L'email du rôle {role.label} n'est pas signalé comme invalide."
            )
        previous = convention.party_email(role)
        setattr(convention, role.email_field, email)
        if role is Role.PARENT and convention.legal_representatives:
            representatives = [dict(rep) for rep in convention.legal_representatives]
            representatives[0]["email"] = email
            convention.legal_representatives = representatives
        invalid.remove(role.signature_key)
        convention.invalid_emails = invalid
        entry = AuditEntry(
            action=AuditAction.EMAIL_CORRECTED,
            actor_email=identity.email,
            ip=ip,
            details=f"Email {role.label} corrigé : {previous or '-'} -> {email}",
            role=role,
        )
        return self.repository.save(convention, [entry])

    def resubmit(self, convention_id: int, identity: Identity, changes: Optional[Mapping[str, Any]] = None,
                 student_image: Optional[str] = None, ip: Optional[str] = None) -> Convention:
        """
        Reopens a rejected convention in a new signing cycle.

        With RESUBMIT_SIGNATURE_POLICY=reset the earlier signatures stay stored
        but no longer count and the student signs again. With carry_over they
        stay live and the status is re-derived from them.
        """
        convention = self.repository.get(convention_id)
        if not identity.is_privileged and not identity.matches(convention.student_email):
            raise IdentityMismatch(identity.email, convention.student_email)
        if convention.status is not ConventionStatus.REJECTED:
            raise InvalidTransition("Seule une convention rejetée peut être soumise à nouveau.")
        policy = settings.RESUBMIT_SIGNATURE_POLICY
        image = require_drawn_signature(student_image) if policy == "reset" else None
        validated = validate_changes(convention, changes)

        now = utcnow()
        for name, value in validated.items():
            setattr(convention, name, value)
        convention.cycle = (convention.cycle or 1) + 1
        entries = [AuditEntry(
            action=AuditAction.RESUBMITTED,
            actor_email=identity.email,
            date=now,
            ip=ip,
            details=f"Nouvelle soumission (cycle {convention.cycle}, politique {policy})",
        )]
        if policy == "reset":
            convention.signatures_from_cycle = convention.cycle
            convention.signature_rows.append(ConventionSignature(
                cycle=convention.cycle,
                role=Role.STUDENT,
                method=SignatureMethod.CANVAS,
                image=image,
                code=generate_signature_code(),
                signed_at=now,
            ))
            entries.append(AuditLog.signing_entry(Role.STUDENT, identity.email, ip=ip, date=now))
            convention.status = ConventionStatus.SUBMITTED
        else:
            convention.status = ConventionStateMachine.derive_status(
                convention.signed_roles, bool(convention.est_mineur)
            )
        pending = self._certify(convention)
        convention = self.repository.save(convention, entries, pending=pending)
        logger.info("Convention %s resubmitted, cycle %s, status %s", convention_id, convention.cycle,
                    convention.status.value)
        return convention

    def send_reminder(self, convention_id: int, identity: Identity, role: Optional[Role] = None) -> List[Role]:
        """Notifies the pending signer(s); at most once per cooldown window."""
        convention = self.repository.get(convention_id)
        now = utcnow()
        cooldown = timedelta(hours=settings.REMINDER_COOLDOWN_HOURS)
        if convention.last_reminder_at and now - convention.last_reminder_at < cooldown:
            raise ReminderCooldown(
                f"Une relance a déjà été envoyée il y a moins de {settings.REMINDER_COOLDOWN_HOURS} heures."
            )
        pending = ConventionStateMachine.pending_roles(convention)
        if role is not None:
            if role not in pending:
                raise InvalidTransition(f"Aucune signature n'est attendue du rôle {role.label}.")
            pending = [role]
        if not pending:
            raise InvalidTransition("Aucune signature n'est attendue sur cette convention.")

        notifications = [NotificationService.build_reminder(convention, r) for r in pending]
        convention.last_reminder_at = now
        self.repository.save(convention, pending=[n for n in notifications if n is not None])
        logger.info("Reminder for convention %s sent by %s to %s", convention_id, identity.email,
                    ", ".join(r.value for r in pending))
        return pending

    def assign_tracking_teacher(self, convention_id: int, teacher_email: str, identity: Identity,
                                school_address: Optional[Mapping] = None,
                                distance_km: Optional[float] = None):
        """Sets the tracking teacher and creates the matching mission order."""
        convention = self.repository.get(convention_id)
        convention.tracking_teacher_email = teacher_email
        order = self.mission_orders.build(convention, teacher_email, school_address, distance_km)
        notification = NotificationService.build_mission_order(convention, teacher_email)
        self.repository.save(convention, pending=[order, notification])
        logger.info("Tracking teacher %s assigned to convention %s by %s", teacher_email, convention_id,
                    identity.email)
        return order

    def report_absence(self, convention_id: int, absence: Mapping[str, Any], identity: Identity) -> Convention:
        convention = self.repository.get(convention_id)
        allowed = (
            convention.company_rep_email, convention.tutor_email, convention.teacher_email,
            convention.tracking_teacher_email,
        )
        if not identity.is_privileged and not any(identity.matches(email) for email in allowed):
            raise AccessDenied("Seuls l'entreprise, le tuteur et les enseignants peuvent signaler une absence.")
        record = dict(absence)
        if isinstance(record.get("date"), date):
            record["date"] = record["date"].isoformat()
        record["reported_by"] = identity.email
        record["reported_at"] = utcnow().isoformat() + "Z"
        convention.absences = list(convention.absences or []) + [record]
        return self.repository.save(convention)
