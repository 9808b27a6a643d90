"""Stage-2 (AI-likelihood) gallery models."""

from typing import Optional

from pydantic import BaseModel, Field


class Stage2Image(BaseModel):
    """An image scored for how likely it is to be AI-generated."""

    id: str
    image_url: str = ""
    source: str = ""
    score: Optional[int] = Field(None, description="0 = likely real, 2 = likely AI")


class GalleryStats(BaseModel):
    """Gallery progress counters."""

    total: int = Field(0, ge=0)
    completed: int = Field(0, ge=0)
