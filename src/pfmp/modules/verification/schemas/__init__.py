from .verification_schemas import VerificationResponse, CodeLookupResponse

__all__ = ["VerificationResponse", "CodeLookupResponse"]
