"""Evaluation metric models."""

from typing import Optional

from pydantic import BaseModel, Field


class Metric(BaseModel):
    """A named evaluation criterion applied to every model output."""

    id: str = Field(..., description="Opaque metric identifier")
    name: str = Field(..., description="Human-readable metric name")
    description: Optional[str] = Field(None, description="Scoring guideline")


class MetricScore(BaseModel):
    """One recorded score for one metric on one model output."""

    response_id: str = Field(..., description="Model output the score belongs to")
    metric_id: str = Field(..., description="Metric identifier")
    metric_name: Optional[str] = Field(None, description="Metric name, when known")
    score: int = Field(..., description="Recorded score")


class WireEvaluation(BaseModel):
    """Evaluation entry in the shape the bulk-save endpoint expects."""

    metric_name: str
    score: int
