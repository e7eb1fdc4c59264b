from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pfmp.clock import utcnow, isoformat
from pfmp.modules.conventions.models.audit_entry import AuditLogEntry
from pfmp.modules.conventions.models.enums import AuditAction, Role

ACTION_LABELS = {
    AuditAction.CREATED: "Création",
    AuditAction.SIGNED: "Signature",
    AuditAction.OTP_SENT: "Code OTP envoyé",
    AuditAction.OTP_VALIDATED: "Code OTP validé",
    AuditAction.REJECTED: "Rejet",
    AuditAction.RESUBMITTED: "Nouvelle soumission",
    AuditAction.EMAIL_CORRECTED: "Correction d'email",
    AuditAction.ATTESTATION_SIGNED: "Signature de l'attestation",
}


@dataclass(frozen=True)
class AuditEntry:
    """Audit event before it is written to the trail."""
    action: AuditAction
    actor_email: str
    date: datetime = field(default_factory=utcnow)
    ip: Optional[str] = None
    details: Optional[str] = None
    role: Optional[Role] = None

    def to_dict(self) -> dict:
        return {
            "date": isoformat(self.date),
            "action": self.action.value,
            "actorEmail": self.actor_email,
            "ip": self.ip,
            "details": self.details,
        }


class AuditLog:
    """
    Append-only trail of one convention.

    Entries are only ever appended; reading returns them in insertion order,
    which is also the order of the tamper-evidence table of the rendered
    document.
    """

    def __init__(self, convention):
        self._convention = convention

    @property
    def entries(self) -> tuple:
        return tuple(self._convention.audit_logs)

    def __len__(self) -> int:
        return len(self._convention.audit_logs)

    def __iter__(self):
        return iter(self.entries)

    def append(self, entry: AuditEntry) -> AuditLogEntry:
        row = AuditLogEntry(
            cycle=self._convention.cycle or 1,
            role=entry.role,
            date=entry.date,
            action=entry.action,
            actor_email=entry.actor_email,
            ip=entry.ip,
            details=entry.details,
        )
        self._convention.audit_logs.append(row)
        return row

    def signing_entries(self, role: Role) -> List[AuditLogEntry]:
        floor = self._convention.signatures_from_cycle or 1
        return [
            row for row in self._convention.audit_logs
            if row.action is AuditAction.SIGNED and row.role is role and (row.cycle or 1) >= floor
        ]

    def signed_roles(self) -> frozenset:
        """Roles with a live signing entry; mirrors the live signature keys."""
        return frozenset(role for role in Role if self.signing_entries(role))

    def as_table(self) -> List[dict]:
        return [
            {
                "date": row.date.strftime("%d/%m/%Y %H:%M:%S") if row.date else "",
                "action": ACTION_LABELS.get(row.action, row.action.value),
                "actorEmail": row.actor_email,
                "ip": row.ip or "",
                "details": row.details or "",
            }
            for row in self.entries
        ]

    @staticmethod
    def signing_entry(role: Role, actor_email: str, ip: Optional[str] = None,
                      on_behalf: bool = False, date: Optional[datetime] = None) -> AuditEntry:
        details = f"Signature par {role.label}"
        if on_behalf:
            details += " (double signature entreprise / tuteur)"
        return AuditEntry(
            action=AuditAction.SIGNED,
            actor_email=actor_email,
            date=date or utcnow(),
            ip=ip,
            details=details,
            role=role,
        )
