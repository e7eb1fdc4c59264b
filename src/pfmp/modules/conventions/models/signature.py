# src/pfmp/modules/conventions/models/signature.py

from sqlalchemy import Column, Integer, ForeignKey, DateTime, String, Text, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from pfmp.clock import utcnow
from pfmp.database import Base
from pfmp.modules.conventions.models.enums import Role, SignatureMethod

class ConventionSignature(Base):
    """One signing party's mark on one signing cycle of a convention.

    Rows are never updated nor deleted; the unique key keeps two concurrent
    requests from recording the same role twice.
    """
    __tablename__ = "convention_signatures"
    __table_args__ = (
        UniqueConstraint("convention_id", "cycle", "role", name="uq_signature_role_per_cycle"),
    )

    id            = Column(Integer, primary_key=True)
    convention_id = Column(Integer, ForeignKey("conventions.id"), nullable=False, index=True)
    cycle         = Column(Integer, nullable=False, default=1)
    role          = Column(Enum(Role), nullable=False)
    method        = Column(Enum(SignatureMethod), nullable=False)
    image         = Column(Text, nullable=False)
    code          = Column(String(16), nullable=False, index=True)
    signed_at     = Column(DateTime, default=utcnow, nullable=False)

    convention = relationship("Convention", back_populates="signature_rows")
