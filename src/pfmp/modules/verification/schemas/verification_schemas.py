from datetime import date
from typing import Any, Dict, Optional

from pydantic import BaseModel

class VerificationResponse(BaseModel):
    valid: bool
    reason: str
    kind: Optional[str] = None
    convention_id: Optional[int] = None
    hash_display: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None

class CodeLookupResponse(BaseModel):
    convention_id: int
    status: str
    student: str
    company: str
    start_date: date
    end_date: date
    certificate_hash: Optional[str] = None
    attestation_hash: Optional[str] = None
