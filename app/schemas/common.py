"""
Error envelope shared by every router, referenced from `responses=` so the
OpenAPI document shows the `{code, message, details}` shape for 4xx/5xx.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str = Field(examples=["OUT_OF_ORDER_EVENT"])
    message: str
    details: Optional[dict[str, Any]] = None
