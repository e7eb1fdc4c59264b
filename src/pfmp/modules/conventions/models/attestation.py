from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, Float, ForeignKey
from sqlalchemy.orm import relationship

from pfmp.database import Base

class Attestation(Base):
    """End-of-placement attestation; unsigned until signed, then frozen."""
    __tablename__ = 'attestations'

    id = Column(Integer, primary_key=True)
    convention_id = Column(Integer, ForeignKey('conventions.id'), nullable=False, unique=True)

    signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)
    signer_name = Column(String, nullable=True)
    signer_function = Column(String, nullable=True)
    signer_email = Column(String, nullable=True)
    signature_image = Column(Text, nullable=True)
    signature_code = Column(String(16), nullable=True, index=True)

    competences = Column(Text, nullable=True)
    activities = Column(Text, nullable=True)
    gratification = Column(String, nullable=True)
    signed_place = Column(String, nullable=True)
    total_days = Column(Float, nullable=True)
    hash = Column(String(12), nullable=True, index=True)

    convention = relationship("Convention", back_populates="attestation")
