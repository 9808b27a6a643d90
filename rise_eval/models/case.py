"""Case tree models: case -> images -> model outputs."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from rise_eval.models.metric import MetricScore
from rise_eval.models.record import GroundTruth

UNIFIED_CASE_ID = "unified-worklist"
UNIFIED_STUDY_ID = "Unified Worklist"


class EvaluationStatus(str, Enum):
    """Completion status of a model output or image."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ModelOutput(BaseModel):
    """One AI-generated candidate for a ground-truth image."""

    id: str
    model_name: str = Field(..., description="Display label, e.g. 'A'")
    image_url: str = ""
    response: str = ""
    evaluations: list[MetricScore] = Field(default_factory=list)
    status: EvaluationStatus = EvaluationStatus.PENDING


class ImageRecord(BaseModel):
    """A ground-truth image and the model outputs evaluated against it."""

    image_index: int = Field(..., ge=0, description="Position in the case")
    image_url: str = ""
    image_id: str
    internal_id: Optional[str] = None
    assignment_id: Optional[str] = None
    study_id: Optional[str] = None
    ground_truth: GroundTruth = Field(default_factory=GroundTruth)
    model_outputs: list[ModelOutput] = Field(default_factory=list)
    evaluation_status: EvaluationStatus = EvaluationStatus.PENDING
    completed_models: int = Field(0, ge=0)
    total_models: int = Field(0, ge=0)


class CaseRecord(BaseModel):
    """Root aggregate of the evaluator's worklist."""

    id: str = UNIFIED_CASE_ID
    study_id: str = UNIFIED_STUDY_ID
    images: list[ImageRecord] = Field(default_factory=list)
    total_progress: int = Field(0, ge=0, le=100)
