from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional

class OtpSendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    convention_id: int = Field(..., alias="conventionId")

class OtpVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    code: str = Field(..., min_length=4, max_length=8)
    convention_id: Optional[int] = Field(None, alias="conventionId")

class AuditLogResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    action: str
    actor_email: str = Field(..., alias="actorEmail")
    ip: Optional[str] = None
    details: Optional[str] = None

class OtpSendResponse(BaseModel):
    success: bool = True

class OtpVerifyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    audit_log: AuditLogResponse = Field(..., alias="auditLog")
