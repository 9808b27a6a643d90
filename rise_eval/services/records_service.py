"""Load normalized records for a worklist id."""

import asyncio
from typing import Optional

import structlog

from rise_eval.models.metric import Metric
from rise_eval.models.record import Record
from rise_eval.services.adapters import (
    transform_assigned_images_to_records,
    transform_assignment_to_records,
)
from rise_eval.services.api_client import EvaluationApiClient
from rise_eval.services.errors import EvaluationError, NotFoundError
from rise_eval.services.metric_cache import MetricCatalogCache
from rise_eval.services.notification_service import Notifier

logger = structlog.get_logger(__name__)

ALL_ASSIGNED = "all"


class RecordsService:
    """Fetch raw payloads alongside the metric catalog and normalize them."""

    def __init__(self, client: EvaluationApiClient, metric_cache: MetricCatalogCache):
        self._client = client
        self._metric_cache = metric_cache

    async def get_metrics(self) -> list[Metric]:
        return await self._metric_cache.get_metrics()

    async def get_assignment_records(self, assignment_id: str) -> list[Record]:
        """Records for one assignment; NotFoundError if the id is not an assignment."""
        payload, metrics = await asyncio.gather(
            self._client.get_assignment_details(assignment_id),
            self._metric_cache.get_metrics(),
        )
        return transform_assignment_to_records(assignment_id, payload, metrics)

    async def get_all_assigned_records(self) -> list[Record]:
        """Records for every image assigned to the current evaluator."""
        payload, metrics = await asyncio.gather(
            self._client.get_assigned_images(),
            self._metric_cache.get_metrics(),
        )
        return transform_assigned_images_to_records(payload, metrics)

    async def resolve_records(self, worklist_id: str) -> list[Record]:
        """Resolve a worklist id to records.

        ``"all"`` loads the unified list. Any other id is tried as an
        assignment first; a 404 falls back to the unified list.

        Raises:
            EvaluationError: A specific assignment returned no images
        """
        if worklist_id == ALL_ASSIGNED:
            records = await self.get_all_assigned_records()
            if not records:
                logger.warning("no_assigned_images")
            return records

        try:
            records = await self.get_assignment_records(worklist_id)
        except NotFoundError:
            logger.info("assignment_fallback_to_unified_list", worklist_id=worklist_id)
            return await self.get_all_assigned_records()

        if not records:
            raise EvaluationError(
                f"No records returned for assignment {worklist_id}",
                user_message="No records returned from API",
            )
        return records


class RecordsLoader:
    """Per-view loader that fetches each worklist id at most once.

    Repeat loads of the same id share the in-flight fetch or reuse its
    result. Failures are notified once and re-raised; a failed id may be
    loaded again.
    """

    def __init__(self, service: RecordsService, notifier: Optional[Notifier] = None):
        self._service = service
        self._notifier = notifier or Notifier()
        self._tasks: dict[str, asyncio.Task] = {}

    def is_loaded(self, worklist_id: str) -> bool:
        task = self._tasks.get(worklist_id)
        return task is not None and task.done() and task.exception() is None

    async def load(self, worklist_id: str) -> list[Record]:
        if not worklist_id:
            raise ValueError("worklist_id is required")

        task = self._tasks.get(worklist_id)
        if task is None:
            task = asyncio.ensure_future(self._load(worklist_id))
            self._tasks[worklist_id] = task

        return await asyncio.shield(task)

    async def _load(self, worklist_id: str) -> list[Record]:
        records = None
        try:
            records = await self._service.resolve_records(worklist_id)
        except EvaluationError as e:
            logger.error("records_load_failed", worklist_id=worklist_id, error=str(e))
            self._notifier.error("Failed to load case details", e.user_message)
            raise
        except Exception as e:
            logger.error(
                "records_load_failed",
                worklist_id=worklist_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._notifier.error("Failed to load case details", "An unexpected error occurred.")
            raise
        finally:
            if records is None:
                self._tasks.pop(worklist_id, None)

        for record in records:
            if not record.image_url:
                logger.warning("record_missing_image_url", image_id=record.image_id)
        logger.info("records_loaded", worklist_id=worklist_id, count=len(records))
        return records
