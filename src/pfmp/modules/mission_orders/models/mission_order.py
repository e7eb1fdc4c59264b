from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, Enum, Float, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from pfmp.clock import utcnow
from pfmp.database import Base

class MissionOrderStatus(PyEnum):
    PENDING = "PENDING"
    SIGNED = "SIGNED"

class MissionOrder(Base):
    """Authorization of a tracking teacher's visits; PENDING until the school head signs."""
    __tablename__ = 'mission_orders'
    __table_args__ = (
        UniqueConstraint("convention_id", "teacher_email", name="uq_mission_order_teacher"),
    )

    id = Column(Integer, primary_key=True)
    convention_id = Column(Integer, ForeignKey('conventions.id'), nullable=False, index=True)
    teacher_email = Column(String, nullable=False, index=True)
    school_address = Column(JSON, nullable=True)
    company_address = Column(JSON, nullable=True)
    distance_km = Column(Float, nullable=True)
    status = Column(Enum(MissionOrderStatus), nullable=False, default=MissionOrderStatus.PENDING)

    signature_image = Column(Text, nullable=True)
    signer_name = Column(String, nullable=True)
    signer_email = Column(String, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    signature_hash = Column(String(20), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)

    convention = relationship("Convention")
