# module academy.admin.schemas
"""Corps de requête de la console admin des commandes."""
from typing import Optional
from pydantic import BaseModel, Field


class AdminRefundRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[float] = Field(default=None, gt=0)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
