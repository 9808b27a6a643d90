"""Completion status and progress derivation for the case tree.

Every value here is recomputed from model output statuses; nothing is
accumulated incrementally.
"""

import math
from typing import Mapping, Optional, Sequence

from rise_eval.models.case import CaseRecord, EvaluationStatus, ImageRecord, ModelOutput
from rise_eval.models.metric import Metric


def derive_status(
    output: ModelOutput,
    scores: Optional[Mapping[str, int]],
    metrics: Sequence[Metric],
) -> EvaluationStatus:
    """Derive a model output's status from its scores.

    Status only moves forward: a completed output stays completed. A
    saved score map covering every catalog metric completes the output,
    so a save against an empty catalog completes it too. ``None`` means
    nothing has been saved.
    """
    if output.status == EvaluationStatus.COMPLETED:
        return EvaluationStatus.COMPLETED

    scored = 0
    if scores is not None:
        scored = sum(1 for metric in metrics if metric.id in scores)
        if scored == len(metrics):
            return EvaluationStatus.COMPLETED
    if scored > 0 or output.status == EvaluationStatus.IN_PROGRESS:
        return EvaluationStatus.IN_PROGRESS
    return EvaluationStatus.PENDING


def derive_image_status(outputs: Sequence[ModelOutput]) -> EvaluationStatus:
    """Derive an image's status from its model outputs."""
    completed = sum(1 for o in outputs if o.status == EvaluationStatus.COMPLETED)
    if outputs and completed == len(outputs):
        return EvaluationStatus.COMPLETED
    if any(o.status != EvaluationStatus.PENDING for o in outputs):
        return EvaluationStatus.IN_PROGRESS
    return EvaluationStatus.PENDING


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like Math.round."""
    return int(math.floor(value + 0.5))


def compute_total_progress(images: Sequence[ImageRecord]) -> int:
    """Percentage of completed model outputs across all images, 0-100."""
    total = sum(image.total_models for image in images)
    if total == 0:
        return 0
    completed = sum(image.completed_models for image in images)
    return min(100, round_half_up(100 * completed / total))


def recompute_image(image: ImageRecord) -> ImageRecord:
    """Return a copy of ``image`` with counters re-derived from its outputs."""
    outputs = image.model_outputs
    return image.model_copy(
        update={
            "completed_models": sum(
                1 for o in outputs if o.status == EvaluationStatus.COMPLETED
            ),
            "total_models": len(outputs),
            "evaluation_status": derive_image_status(outputs),
        }
    )


def recompute_case(case: CaseRecord) -> CaseRecord:
    """Return a new case with every image counter and the total re-derived."""
    images = [recompute_image(image) for image in case.images]
    return case.model_copy(
        update={"images": images, "total_progress": compute_total_progress(images)}
    )
