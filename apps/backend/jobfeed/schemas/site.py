"""Site Pydantic schemas."""

from pydantic import BaseModel


class SiteResponse(BaseModel):
    id: int
    name: str
    urls: list[str]
    query_params_to_remove: list[str] | None = None

    class Config:
        from_attributes = True
