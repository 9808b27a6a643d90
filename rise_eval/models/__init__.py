"""Models package exports."""

from rise_eval.models.auth import (
    AssignmentOverview,
    AssignmentSummary,
    LoginResponse,
    UserDetails,
    UserSummary,
)
from rise_eval.models.case import (
    UNIFIED_CASE_ID,
    UNIFIED_STUDY_ID,
    CaseRecord,
    EvaluationStatus,
    ImageRecord,
    ModelOutput,
)
from rise_eval.models.metric import Metric, MetricScore, WireEvaluation
from rise_eval.models.record import GroundTruth, Record, RecordModelOutput
from rise_eval.models.stage2 import GalleryStats, Stage2Image

__all__ = [
    "AssignmentOverview",
    "AssignmentSummary",
    "CaseRecord",
    "EvaluationStatus",
    "GalleryStats",
    "GroundTruth",
    "ImageRecord",
    "LoginResponse",
    "Metric",
    "MetricScore",
    "ModelOutput",
    "Record",
    "RecordModelOutput",
    "Stage2Image",
    "UNIFIED_CASE_ID",
    "UNIFIED_STUDY_ID",
    "UserDetails",
    "UserSummary",
    "WireEvaluation",
]
