"""Advanced matching Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class AdvancedMatchingUpdate(BaseModel):
    """Schema for creating or replacing the advanced matching config."""

    chatgpt_prompt: str = Field("", max_length=4000)
    blacklisted_companies: list[str] = Field(default_factory=list, max_length=1000)


class AdvancedMatchingResponse(BaseModel):
    chatgpt_prompt: str
    blacklisted_companies: list[str]
    updated_at: datetime

    class Config:
        from_attributes = True


class LLMUsageResponse(BaseModel):
    """Cumulative LLM usage of the user."""

    call_count: int = 0
    cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0

    class Config:
        from_attributes = True
