"""Build the case tree from normalized records."""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from rise_eval.models.case import (
    CaseRecord,
    EvaluationStatus,
    ImageRecord,
    ModelOutput,
)
from rise_eval.models.record import Record
from rise_eval.services.progress import compute_total_progress, derive_image_status

ScoreMap = dict[str, dict[str, int]]


@dataclass
class CaseBuildResult:
    """A freshly built case and the score index recovered from it."""

    case_record: CaseRecord
    initial_scores: ScoreMap = field(default_factory=dict)


def _parse_status(value: Optional[str]) -> Optional[EvaluationStatus]:
    try:
        return EvaluationStatus(value)
    except ValueError:
        return None


def build_case(records: Optional[Sequence[Record]]) -> Optional[CaseBuildResult]:
    """Build a CaseRecord from records, one image per record.

    Image order follows record order. Output status reflects what the
    backend reported; completeness is not recomputed here.

    Returns:
        CaseBuildResult, or None when there is nothing to show
    """
    if not records:
        return None

    initial_scores: ScoreMap = {}
    images: list[ImageRecord] = []

    for index, record in enumerate(records):
        outputs: list[ModelOutput] = []
        for position, mo in enumerate(record.model_outputs):
            if mo.evaluations:
                initial_scores[mo.response_id] = {
                    e.metric_id: e.score for e in mo.evaluations
                }

            outputs.append(
                ModelOutput(
                    id=mo.response_id,
                    model_name=mo.display_label or f"Model {position + 1}",
                    image_url=mo.generated_image_url or "",
                    response=mo.response,
                    evaluations=list(mo.evaluations),
                    status=(
                        EvaluationStatus.COMPLETED
                        if mo.is_completed
                        else EvaluationStatus.PENDING
                    ),
                )
            )

        images.append(
            ImageRecord(
                image_index=index,
                image_id=record.image_id or f"img-{index}",
                internal_id=record.internal_id,
                assignment_id=record.id or None,
                study_id=record.study_id,
                image_url=record.image_url,
                ground_truth=record.ground_truth,
                model_outputs=outputs,
                completed_models=sum(1 for mo in record.model_outputs if mo.is_completed),
                total_models=len(record.model_outputs),
                evaluation_status=(
                    _parse_status(record.status) or derive_image_status(outputs)
                ),
            )
        )

    case_record = CaseRecord(images=images, total_progress=compute_total_progress(images))
    return CaseBuildResult(case_record=case_record, initial_scores=initial_scores)
