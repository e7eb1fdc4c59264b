from datetime import datetime
from pydantic import BaseModel, EmailStr
from typing import Optional
from pfmp.modules.auth.models.user import UserRole

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    user_id: int
    user_name: str
    user_role: str

class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: UserRole
    phone: Optional[str] = None
    is_super_admin: bool = False

class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    is_active: bool
    is_super_admin: bool
    created_at: datetime

    model_config = {"from_attributes": True}
