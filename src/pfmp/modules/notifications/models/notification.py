from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from pfmp.clock import utcnow
from pfmp.database import Base

class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    message = Column(String(1024), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    recipient_email = Column(String, nullable=False, index=True)
    convention_id = Column(Integer, ForeignKey('conventions.id'), nullable=True)
    read = Column(Boolean, default=False)

    convention = relationship("Convention")
