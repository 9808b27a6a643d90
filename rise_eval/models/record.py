"""Normalized records produced from raw assignment and image payloads."""

from typing import Optional

from pydantic import BaseModel, Field

from rise_eval.models.metric import Metric, MetricScore


class GroundTruth(BaseModel):
    """Reference report text for a ground-truth image."""

    findings: str = ""
    impressions: str = ""


class RecordModelOutput(BaseModel):
    """A model output as reported by the backend, before case building."""

    response_id: str
    response: str = ""
    display_label: Optional[str] = None
    generated_image_url: Optional[str] = None
    is_completed: bool = False
    evaluations: list[MetricScore] = Field(default_factory=list)


class Record(BaseModel):
    """One ground-truth image with its model outputs.

    ``id`` is the assignment the image belongs to; ``internal_id`` is the
    backend identity used when saving evaluations.
    """

    id: str = Field(..., description="Assignment identifier")
    internal_id: Optional[str] = Field(None, description="Backend image identity")
    image_url: str = ""
    image_id: Optional[str] = Field(None, description="Display image identifier")
    study_id: Optional[str] = None
    status: str = "pending"
    model_outputs: list[RecordModelOutput] = Field(default_factory=list)
    metrics: list[Metric] = Field(default_factory=list)
    ground_truth: GroundTruth = Field(default_factory=GroundTruth)
