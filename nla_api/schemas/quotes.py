from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel


class QuoteResponse(BaseModel):
    status: str = "success"
    data: Dict[str, Any]
    message: Optional[str] = None


class QuoteStatus(BaseModel):
    needsUpdate: bool
    lastUpdated: datetime
    hoursUntilNextUpdate: float


class QuoteStatusResponse(BaseModel):
    status: str = "success"
    data: QuoteStatus
