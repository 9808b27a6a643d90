"""Pure transforms from raw backend payloads to normalized records.

Two endpoints return images in nearly the same shape:

- ``evaluations/assignments/{id}/``: the assignment id is known by the caller
- ``evaluations/assigned-images/``: each image carries its own ``assignment_id``

Both converge on the same Record shape. Optional fields default once here
so downstream code never re-checks them. Nothing in this module performs
I/O or mutates its inputs; shape variance yields empty values, not errors.
"""

import math
from typing import Any, Callable, Iterable, Optional

import structlog

from rise_eval.models.metric import Metric, MetricScore
from rise_eval.models.record import GroundTruth, Record, RecordModelOutput

logger = structlog.get_logger(__name__)


def normalize_metric_key(name: str) -> str:
    """Normalize a metric name to the key used in raw score payloads.

    "Anatomical Validity" -> "anatomical_validity"
    """
    return name.lower().replace(" ", "_")


def create_metric_key_map(metrics: Optional[Iterable[Metric]]) -> dict[str, str]:
    """Map normalized metric keys to metric ids.

    Two metrics normalizing to the same key resolve last-write-wins; the
    collision is logged so it can be detected.
    """
    key_map: dict[str, str] = {}
    for metric in metrics or []:
        key = normalize_metric_key(metric.name)
        previous = key_map.get(key)
        if previous is not None and previous != metric.id:
            logger.warning(
                "metric_key_collision",
                key=key,
                previous_metric_id=previous,
                metric_id=metric.id,
            )
        key_map[key] = metric.id
    return key_map


def _coerce_score(value: Any) -> Optional[int]:
    """Convert a raw score to an integer; None when not an integral number."""
    if isinstance(value, bool):
        return int(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _as_text(value: Any) -> str:
    """Free text field; containers and missing values read as empty."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


def map_evaluations(
    response_id: str,
    raw_evaluations: Any,
    key_map: dict[str, str],
    metric_names: dict[str, str],
) -> list[MetricScore]:
    """Translate a raw ``{metric_key: score}`` mapping into metric scores.

    Keys without a matching metric, and non-numeric scores, are dropped
    with a warning.
    """
    scores: list[MetricScore] = []
    for key, raw_score in _as_dict(raw_evaluations).items():
        metric_id = key_map.get(key)
        if metric_id is None:
            logger.warning("metric_mapping_failed", key=key, response_id=response_id)
            continue

        score = _coerce_score(raw_score)
        if score is None:
            logger.warning(
                "metric_score_invalid",
                key=key,
                response_id=response_id,
                score=repr(raw_score),
            )
            continue

        scores.append(
            MetricScore(
                response_id=response_id,
                metric_id=metric_id,
                metric_name=metric_names.get(metric_id),
                score=score,
            )
        )
    return scores


def _parse_model_output(
    raw: dict,
    key_map: dict[str, str],
    metric_names: dict[str, str],
) -> RecordModelOutput:
    response_id = _as_str(raw.get("id")) or ""
    return RecordModelOutput(
        response_id=response_id,
        response=_as_text(raw.get("response_text")),
        display_label=_as_str(raw.get("display_label")),
        generated_image_url=_as_str(raw.get("generated_image_url")),
        is_completed=bool(raw.get("is_completed")),
        evaluations=map_evaluations(
            response_id, raw.get("evaluations"), key_map, metric_names
        ),
    )


def _parse_record(
    assignment_id: str,
    image: dict,
    metrics: list[Metric],
    key_map: dict[str, str],
    metric_names: dict[str, str],
) -> Record:
    ground_truth = _as_dict(image.get("ground_truth"))
    progress = _as_dict(image.get("progress"))

    return Record(
        id=assignment_id,
        internal_id=_as_str(image.get("id")),
        image_url=_as_text(image.get("ground_truth_image_url")),
        image_id=_as_str(image.get("image_id")),
        study_id=_as_str(image.get("study_id")),
        status=_as_text(progress.get("status")) or "pending",
        model_outputs=[
            _parse_model_output(mo, key_map, metric_names)
            for mo in _as_list(image.get("model_outputs"))
            if isinstance(mo, dict)
        ],
        metrics=list(metrics),
        ground_truth=GroundTruth(
            findings=_as_text(ground_truth.get("findings")),
            impressions=_as_text(ground_truth.get("impressions")),
        ),
    )


def _transform_images(
    payload: Any,
    metrics: Optional[list[Metric]],
    assignment_id_for: Callable[[dict], str],
) -> list[Record]:
    images = _as_list(_as_dict(payload).get("images"))
    metrics = list(metrics or [])
    key_map = create_metric_key_map(metrics)
    metric_names = {m.id: m.name for m in metrics}

    return [
        _parse_record(assignment_id_for(image), image, metrics, key_map, metric_names)
        for image in images
        if isinstance(image, dict)
    ]


def transform_assignment_to_records(
    assignment_id: str,
    payload: Any,
    metrics: Optional[list[Metric]],
) -> list[Record]:
    """Transform an assignment-detail payload into records.

    Args:
        assignment_id: Assignment the payload was fetched for
        payload: Raw ``evaluations/assignments/{id}/`` body
        metrics: Active metric catalog

    Returns:
        One Record per image, in payload order
    """
    return _transform_images(payload, metrics, lambda _image: assignment_id)


def transform_assigned_images_to_records(
    payload: Any,
    metrics: Optional[list[Metric]],
) -> list[Record]:
    """Transform the unified assigned-images payload into records.

    Each image names its own assignment via ``assignment_id``.
    """
    return _transform_images(
        payload, metrics, lambda image: _as_str(image.get("assignment_id")) or ""
    )
