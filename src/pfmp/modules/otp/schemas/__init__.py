from .otp_schemas import (
    OtpSendRequest, OtpVerifyRequest, OtpSendResponse, OtpVerifyResponse, AuditLogResponse
)

__all__ = [
    "OtpSendRequest", "OtpVerifyRequest", "OtpSendResponse", "OtpVerifyResponse", "AuditLogResponse"
]
