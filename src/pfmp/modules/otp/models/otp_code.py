from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from pfmp.clock import utcnow
from pfmp.database import Base

class OtpCode(Base):
    """One-time signing code sent to a signer for one convention."""
    __tablename__ = 'otp_codes'

    id = Column(Integer, primary_key=True)
    email = Column(String, nullable=False, index=True)
    convention_id = Column(Integer, ForeignKey('conventions.id'), nullable=False, index=True)
    code = Column(String(8), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)
    invalidated_at = Column(DateTime, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
