from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from pfmp.modules.mission_orders.models.mission_order import MissionOrderStatus

class MissionOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    convention_id: int
    teacher_email: str
    school_address: Optional[dict] = None
    company_address: Optional[dict] = None
    distance_km: Optional[float] = None
    status: MissionOrderStatus
    signer_name: Optional[str] = None
    signed_at: Optional[datetime] = None
    signature_hash: Optional[str] = None
    created_at: datetime

class MissionOrderSignRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)
    signature_image: str
    signer_name: Optional[str] = None
    max_distance_km: Optional[float] = Field(None, gt=0)
