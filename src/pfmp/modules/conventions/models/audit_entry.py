from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Text, Enum
from sqlalchemy.orm import relationship
from pfmp.clock import utcnow, isoformat
from pfmp.database import Base
from pfmp.modules.conventions.models.enums import AuditAction, Role

class AuditLogEntry(Base):
    """Row of the append-only audit trail of a convention.

    Insertion order (primary key) is the rendering order.
    """
    __tablename__ = "convention_audit_logs"

    id            = Column(Integer, primary_key=True)
    convention_id = Column(Integer, ForeignKey("conventions.id"), nullable=False, index=True)
    cycle         = Column(Integer, nullable=False, default=1)
    role          = Column(Enum(Role), nullable=True)
    date          = Column(DateTime, default=utcnow, nullable=False)
    action        = Column(Enum(AuditAction), nullable=False)
    actor_email   = Column(String, nullable=False)
    ip            = Column(String(64), nullable=True)
    details       = Column(Text, nullable=True)

    convention = relationship("Convention", back_populates="audit_logs")

    def to_dict(self) -> dict:
        return {
            "date": isoformat(self.date),
            "action": self.action.value,
            "actorEmail": self.actor_email,
            "ip": self.ip,
            "details": self.details,
        }
