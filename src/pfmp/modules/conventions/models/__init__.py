from .enums import AuditAction, ConventionStatus, Role, SignatureMethod
from .convention import Convention
from .signature import ConventionSignature
from .audit_entry import AuditLogEntry
from .attestation import Attestation

__all__ = [
    'AuditAction', 'ConventionStatus', 'Role', 'SignatureMethod',
    'Convention', 'ConventionSignature', 'AuditLogEntry', 'Attestation',
]
