from .otp_code import OtpCode

__all__ = ["OtpCode"]
