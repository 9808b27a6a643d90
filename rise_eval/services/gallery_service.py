"""Stage-2 gallery: rapid AI-likelihood scoring with optimistic updates."""

from typing import Optional

import structlog

from rise_eval.config import Settings, get_settings
from rise_eval.models.stage2 import GalleryStats, Stage2Image
from rise_eval.services.api_client import EvaluationApiClient
from rise_eval.services.errors import ApiError, ScoreValidationError
from rise_eval.services.mutation import apply_mutation
from rise_eval.services.notification_service import Notifier

logger = structlog.get_logger(__name__)


class Stage2Gallery:
    """Gallery state: images, progress counters and the open image."""

    def __init__(
        self,
        client: EvaluationApiClient,
        notifier: Optional[Notifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._notifier = notifier or Notifier(
            dedupe_seconds=self.settings.notification_dedupe_seconds
        )
        self.images: list[Stage2Image] = []
        self.stats = GalleryStats()
        self.selected_index: Optional[int] = None
        self._confirmed: dict[str, Optional[int]] = {}

    async def load(self) -> None:
        """Fetch the image list and counters."""
        try:
            data = await self._client.get_stage2_images()
        except ApiError as e:
            logger.error("stage2_load_failed", error=str(e))
            self._notifier.error("Failed to load data", e.user_message)
            raise

        data = data or {}
        self.images = [Stage2Image.model_validate(i) for i in data.get("images") or []]
        self.stats = GalleryStats(
            total=data.get("total_count") or 0,
            completed=data.get("completed_count") or 0,
        )
        self._confirmed = {image.id: image.score for image in self.images}
        self.selected_index = None
        logger.info("stage2_loaded", count=len(self.images), completed=self.stats.completed)

    def select(self, index: Optional[int]) -> bool:
        if index is None:
            self.selected_index = None
            return True
        if not 0 <= index < len(self.images):
            return False
        self.selected_index = index
        return True

    def next(self) -> bool:
        if self.selected_index is None:
            return False
        return self.select(self.selected_index + 1)

    def previous(self) -> bool:
        if self.selected_index is None or self.selected_index == 0:
            return False
        return self.select(self.selected_index - 1)

    async def score(self, index: int, score: int) -> bool:
        """Score one image, showing the result before the save confirms.

        On failure the image is restored to its last confirmed score, but
        only while it still shows this call's optimistic write; a newer
        score or a reload in the meantime wins.

        Returns:
            True if saved, False if the index is out of range or the save failed
        """
        if not 0 <= index < len(self.images):
            return False
        if not self.settings.stage2_score_min <= score <= self.settings.stage2_score_max:
            raise ScoreValidationError(f"Stage 2 score must be in range, got {score}")

        current = self.images[index]
        optimistic = current.model_copy(update={"score": score})

        def apply() -> None:
            self.images = list(self.images)
            self.images[index] = optimistic
            if current.score is None:
                self.stats = self.stats.model_copy(
                    update={"completed": self.stats.completed + 1}
                )

        def rollback() -> None:
            if index >= len(self.images) or self.images[index] is not optimistic:
                logger.debug("stage2_rollback_skipped", image_id=optimistic.id)
                return
            confirmed = self._confirmed.get(optimistic.id)
            self.images = list(self.images)
            self.images[index] = optimistic.model_copy(update={"score": confirmed})
            if confirmed is None:
                self.stats = self.stats.model_copy(
                    update={"completed": max(self.stats.completed - 1, 0)}
                )

        try:
            await apply_mutation(
                optimistic=True,
                apply=apply,
                rollback=rollback,
                persist=lambda: self._client.save_stage2_evaluation(optimistic.id, score),
            )
        except ApiError as e:
            logger.error("stage2_score_failed", image_id=optimistic.id, error=str(e))
            self._notifier.error("Failed to save score", e.user_message)
            return False

        self._confirmed[optimistic.id] = score
        return True
