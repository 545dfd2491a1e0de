"""Standard API response schemas."""
from typing import Generic, TypeVar
from pydantic import BaseModel, Field

T = TypeVar('T')


class StandardResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    data: T = Field(..., description="Response data")
    code: str = Field(..., description="Response code")
    httpStatus: str = Field(..., description="HTTP status text")
    description: str = Field(..., description="Response description")

    model_config = {"from_attributes": True}


# Response codes
class ResponseCodes:
    """Standard response codes."""

    # Success codes (2xx)
    HEALTH_OK = "HEALTH_0001"
    JOBS_RETRIEVED = "JOB_0001"
    JOB_RETRIEVED = "JOB_0002"
