from sqlalchemy import Column, Integer, String, Enum, DateTime, Boolean
from enum import Enum as PyEnum

from pfmp.clock import utcnow
from pfmp.database import Base

class UserRole(PyEnum):
    STUDENT = "STUDENT"
    PARENT = "PARENT"
    TEACHER = "TEACHER"
    COMPANY_HEAD = "COMPANY_HEAD"
    TUTOR = "TUTOR"
    SCHOOL_HEAD = "SCHOOL_HEAD"
    ADMIN = "ADMIN"

class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(Enum(UserRole), nullable=False)
    phone = Column(String, nullable=True)

    is_active = Column(Boolean, default=True)
    is_super_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)
