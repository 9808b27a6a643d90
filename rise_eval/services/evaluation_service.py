"""Evaluation state machine for one loaded case.

The session owns the CaseRecord and the per-output score index, and is
their only writer. Each mutation replaces the case wholesale with a
recomputed tree; the previous instance is never edited in place.
"""

from dataclasses import dataclass, field
from typing import Mapping, MutableMapping, Optional, Sequence

import structlog

from rise_eval.config import Settings, get_settings
from rise_eval.models.case import CaseRecord, EvaluationStatus, ImageRecord, ModelOutput
from rise_eval.models.metric import Metric, MetricScore, WireEvaluation
from rise_eval.models.record import Record
from rise_eval.services.api_client import EvaluationApiClient
from rise_eval.services.case_builder import ScoreMap, build_case
from rise_eval.services.errors import (
    ApiError,
    BulkSubmissionError,
    EvaluationError,
    MissingImageIdentityError,
    ScoreValidationError,
    SessionClosedError,
)
from rise_eval.services.mutation import apply_mutation
from rise_eval.services.notification_service import Notifier
from rise_eval.services.progress import derive_status, recompute_case

logger = structlog.get_logger(__name__)

START_INDEX_PARAM = "startIndex"
UNKNOWN_METRIC_NAME = "Unknown Metric"


def parse_start_index(params: Optional[Mapping[str, str]]) -> int:
    """Read the resume position from navigation parameters; 0 if absent or invalid."""
    raw = (params or {}).get(START_INDEX_PARAM)
    try:
        index = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(index, 0)


def to_wire_evaluations(
    scores: Mapping[str, int], metrics: Sequence[Metric]
) -> list[WireEvaluation]:
    """Convert ``{metric_id: score}`` into the bulk-save wire shape.

    Ids missing from ``metrics`` are sent as "Unknown Metric".
    """
    names = {m.id: m.name for m in metrics}
    return [
        WireEvaluation(metric_name=names.get(metric_id, UNKNOWN_METRIC_NAME), score=score)
        for metric_id, score in scores.items()
    ]


@dataclass
class SubmissionResult:
    """Outcome of saving one model output's scores."""

    success: bool
    model_output_id: str
    message: str
    applied: bool = True
    completed_models: int = 0
    total_models: int = 0
    total_progress: int = 0
    error: Optional[EvaluationError] = None


@dataclass
class BulkSubmissionResult:
    """Outcome of finalizing the whole case."""

    saved: int
    completed_assignments: list[str] = field(default_factory=list)
    skipped_images: list[int] = field(default_factory=list)


class EvaluationSession:
    """Live evaluation state: case tree, active image, active output, scores."""

    def __init__(
        self,
        client: EvaluationApiClient,
        case_record: CaseRecord,
        metrics: Sequence[Metric],
        initial_scores: Optional[ScoreMap] = None,
        notifier: Optional[Notifier] = None,
        navigation: Optional[MutableMapping[str, str]] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._case = case_record
        self._metrics = list(metrics)
        self._scores: ScoreMap = {k: dict(v) for k, v in (initial_scores or {}).items()}
        self._notifier = notifier or Notifier(
            dedupe_seconds=self.settings.notification_dedupe_seconds
        )
        self.navigation = navigation if navigation is not None else {}
        self._active_model_id: Optional[str] = None
        self._closed = False

        last_index = max(len(case_record.images) - 1, 0)
        self._current_index = min(parse_start_index(self.navigation), last_index)
        self._write_navigation()

    @classmethod
    def from_records(
        cls,
        client: EvaluationApiClient,
        records: Optional[Sequence[Record]],
        metrics: Sequence[Metric],
        **kwargs,
    ) -> Optional["EvaluationSession"]:
        """Build a session from loaded records; None when there is nothing to show."""
        result = build_case(records)
        if result is None:
            return None
        return cls(client, result.case_record, metrics, result.initial_scores, **kwargs)

    # State accessors

    @property
    def case_record(self) -> CaseRecord:
        return self._case

    @property
    def metrics(self) -> list[Metric]:
        return list(self._metrics)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_image(self) -> Optional[ImageRecord]:
        if not self._case.images:
            return None
        return self._case.images[self._current_index]

    @property
    def active_model(self) -> Optional[ModelOutput]:
        if self._active_model_id is None:
            return None
        located = self._locate(self._active_model_id)
        return located[1] if located else None

    @property
    def completed_images(self) -> int:
        return sum(
            1
            for image in self._case.images
            if image.evaluation_status == EvaluationStatus.COMPLETED
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    def scores_for(self, model_output_id: str) -> dict[str, int]:
        """Stored scores for an output, used to prefill the scoring form."""
        return dict(self._scores.get(model_output_id, {}))

    def missing_metrics(self, scores: Mapping[str, int]) -> list[Metric]:
        return [m for m in self._metrics if m.id not in scores]

    def is_fully_scored(self, scores: Mapping[str, int]) -> bool:
        return not self.missing_metrics(scores)

    # Navigation

    def select_image(self, index: int) -> bool:
        """Move the active pointer; ignored outside the image range."""
        if not 0 <= index < len(self._case.images):
            return False
        self._current_index = index
        self._write_navigation()
        return True

    def next_image(self) -> bool:
        return self.select_image(self._current_index + 1)

    def previous_image(self) -> bool:
        return self.select_image(self._current_index - 1)

    def select_model(self, model_output_id: Optional[str]) -> Optional[ModelOutput]:
        """Open the scoring focus on one output, or close it with None."""
        if model_output_id is None:
            self._active_model_id = None
            return None

        located = self._locate(model_output_id)
        if located is None:
            logger.warning("select_unknown_model_output", model_output_id=model_output_id)
            return None

        self._active_model_id = model_output_id
        return located[1]

    def close(self) -> None:
        """Stop accepting submissions; late results are discarded."""
        self._closed = True
        self._active_model_id = None

    def _write_navigation(self) -> None:
        self.navigation[START_INDEX_PARAM] = str(self._current_index)

    def _locate(self, model_output_id: str) -> Optional[tuple[int, ModelOutput]]:
        for position, image in enumerate(self._case.images):
            for output in image.model_outputs:
                if output.id == model_output_id:
                    return position, output
        return None

    # Scoring

    def _accept_scores(self, scores: Mapping[str, int]) -> dict[str, int]:
        """Keep scores for catalog metrics only; check the score range."""
        known = {m.id for m in self._metrics}
        accepted: dict[str, int] = {}

        for metric_id, score in scores.items():
            if metric_id not in known:
                logger.warning("unknown_metric_dropped", metric_id=metric_id)
                continue
            if not self.settings.score_min <= score <= self.settings.score_max:
                raise ScoreValidationError(
                    f"Score {score} for metric {metric_id} is outside "
                    f"{self.settings.score_min}-{self.settings.score_max}"
                )
            accepted[metric_id] = score

        return accepted

    def _with_saved_scores(self, model_output_id: str, scores: dict[str, int]) -> CaseRecord:
        names = {m.id: m.name for m in self._metrics}
        images = []

        for image in self._case.images:
            if not any(o.id == model_output_id for o in image.model_outputs):
                images.append(image)
                continue

            outputs = []
            for output in image.model_outputs:
                if output.id == model_output_id:
                    output = output.model_copy(
                        update={
                            "evaluations": [
                                MetricScore(
                                    response_id=model_output_id,
                                    metric_id=metric_id,
                                    metric_name=names.get(metric_id),
                                    score=score,
                                )
                                for metric_id, score in scores.items()
                            ],
                            "status": derive_status(output, scores, self._metrics),
                        }
                    )
                outputs.append(output)
            images.append(image.model_copy(update={"model_outputs": outputs}))

        return recompute_case(self._case.model_copy(update={"images": images}))

    async def submit_scores(
        self, model_output_id: str, scores: Mapping[str, int]
    ) -> SubmissionResult:
        """Save every metric score for one model output.

        Local state changes only after the backend confirms the save.

        Raises:
            SessionClosedError: The session was closed
            ScoreValidationError: Unknown output, missing or out-of-range scores
            MissingImageIdentityError: The owning image has no backend id

        Returns:
            SubmissionResult; a failed save is reported here, not raised
        """
        if self._closed:
            raise SessionClosedError("Evaluation session is closed")

        located = self._locate(model_output_id)
        if located is None:
            raise ScoreValidationError(f"Unknown model output: {model_output_id}")
        image_position, _ = located

        accepted = self._accept_scores(scores)
        missing = self.missing_metrics(accepted)
        if missing:
            raise ScoreValidationError(
                "All metrics must be scored before saving",
                missing_metrics=[m.name for m in missing],
            )

        image = self._case.images[image_position]
        if not image.internal_id:
            raise MissingImageIdentityError(
                f"Internal image id missing for image {image.image_index}"
            )

        assignment_id = image.assignment_id or self._case.id
        evaluations = to_wire_evaluations(accepted, self._metrics)
        applied = True

        def apply() -> None:
            nonlocal applied
            if self._closed or self._locate(model_output_id) is None:
                applied = False
                logger.debug("stale_submission_discarded", model_output_id=model_output_id)
                return
            self._scores = {**self._scores, model_output_id: dict(accepted)}
            self._case = self._with_saved_scores(model_output_id, accepted)

        try:
            await apply_mutation(
                optimistic=False,
                apply=apply,
                rollback=lambda: None,
                persist=lambda: self._client.save_evaluations(
                    assignment_id=assignment_id,
                    ground_truth_image_id=image.internal_id,
                    model_output_id=model_output_id,
                    evaluations=evaluations,
                ),
            )
        except ApiError as e:
            logger.error(
                "evaluation_submit_failed",
                model_output_id=model_output_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if not self._closed:
                self._notifier.error("Failed to save evaluation to server", e.user_message)
            return SubmissionResult(
                success=False,
                model_output_id=model_output_id,
                message=e.user_message,
                applied=False,
                error=e,
            )

        result = SubmissionResult(
            success=True,
            model_output_id=model_output_id,
            message="Model evaluation saved",
            applied=applied,
            total_progress=self._case.total_progress,
        )
        located = self._locate(model_output_id)
        if applied and located is not None:
            owner = self._case.images[located[0]]
            result.completed_models = owner.completed_models
            result.total_models = owner.total_models
            self._notifier.success(result.message)

        logger.info(
            "evaluation_submitted",
            model_output_id=model_output_id,
            applied=applied,
            total_progress=self._case.total_progress,
        )
        return result

    def _wire_for_output(self, output: ModelOutput) -> list[WireEvaluation]:
        names = {m.id: m.name for m in self._metrics}
        return [
            WireEvaluation(
                metric_name=e.metric_name or names.get(e.metric_id, UNKNOWN_METRIC_NAME),
                score=e.score,
            )
            for e in output.evaluations
        ]

    async def submit_all(self) -> BulkSubmissionResult:
        """Re-send every completed output, then complete the assignments.

        Images without a backend id are skipped with a warning. Saves run
        in case order; assignments are completed only after every save
        resolved. Saves made before a failure are not rolled back.

        Raises:
            SessionClosedError: The session was closed
            BulkSubmissionError: Any save or completion call failed
        """
        if self._closed:
            raise SessionClosedError("Evaluation session is closed")

        case = self._case
        result = BulkSubmissionResult(saved=0)

        try:
            for image in case.images:
                if not image.internal_id:
                    logger.warning("bulk_submit_image_skipped", image_index=image.image_index)
                    result.skipped_images.append(image.image_index)
                    continue

                assignment_id = image.assignment_id or case.id
                if assignment_id not in result.completed_assignments:
                    result.completed_assignments.append(assignment_id)

                for output in image.model_outputs:
                    if output.status != EvaluationStatus.COMPLETED:
                        continue
                    evaluations = self._wire_for_output(output)
                    if not evaluations:
                        continue
                    await self._client.save_evaluations(
                        assignment_id=assignment_id,
                        ground_truth_image_id=image.internal_id,
                        model_output_id=output.id,
                        evaluations=evaluations,
                    )
                    result.saved += 1

            for assignment_id in result.completed_assignments:
                await self._client.complete_assignment(assignment_id)

        except ApiError as e:
            logger.error("bulk_submit_failed", saved=result.saved, error=str(e))
            self._notifier.error("Failed to submit case", e.user_message)
            raise BulkSubmissionError(result.saved, e) from e

        logger.info(
            "bulk_submit_completed",
            saved=result.saved,
            assignments=len(result.completed_assignments),
            skipped=len(result.skipped_images),
        )
        self._notifier.success("Case evaluation completed and submitted successfully")
        return result
