"""Image URL resolution with refresh and placeholder fallbacks."""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from rise_eval.config import get_settings
from rise_eval.services.errors import ApiError

logger = structlog.get_logger(__name__)


class AssetType(str, Enum):
    """Asset categories the backend can issue refreshed URLs for."""

    IMAGE = "image"
    MODEL = "model"
    STAGE2 = "stage2"
    S3_RECORD = "s3_record"


class ImageSource(str, Enum):
    """Where the currently rendered URL came from."""

    PRIMARY = "primary"
    REFRESHED = "refreshed"
    PLACEHOLDER = "placeholder"


def get_placeholder_url(
    width: int = 800,
    height: int = 600,
    seed: Optional[str | int] = None,
    base_url: Optional[str] = None,
) -> str:
    """Build a grayscale placeholder image URL.

    The same seed always yields the same image.
    """
    base_url = (base_url or get_settings().placeholder_base_url).rstrip("/")
    if seed is not None:
        return f"{base_url}/seed/{seed}/{width}/{height}?grayscale"
    return f"{base_url}/{width}/{height}?grayscale"


def get_image_with_fallback(
    original_url: Optional[str],
    fallback_width: int = 800,
    fallback_height: int = 600,
    seed: Optional[str | int] = None,
    base_url: Optional[str] = None,
) -> str:
    """Return ``original_url`` when non-blank, else a placeholder."""
    if original_url and original_url.strip():
        return original_url
    return get_placeholder_url(fallback_width, fallback_height, seed, base_url)


UrlRefresher = Callable[[str, str], Awaitable[dict]]


@dataclass
class ImageState:
    """Resolution state of one displayed asset."""

    url: str
    source: ImageSource
    seed: str
    refresh_requested: bool = False
    refreshing: bool = False


class ImageResolver:
    """Resolve displayed image URLs for one surface.

    Render order: the primary URL if non-empty; on a load failure, one
    refresh request for the asset; on refresh failure or an empty result,
    a placeholder seeded by the asset key. Each asset is refreshed at most
    once, so a refreshed URL that also fails cannot loop.
    """

    def __init__(
        self,
        refresher: UrlRefresher,
        width: int = 800,
        height: int = 600,
        base_url: Optional[str] = None,
    ):
        self._refresher = refresher
        self.width = width
        self.height = height
        self.base_url = base_url
        self._states: dict[str, ImageState] = {}

    @staticmethod
    def asset_key(asset_type: AssetType | str, asset_id: str) -> str:
        return f"{AssetType(asset_type).value}:{asset_id}"

    def _placeholder(self, seed: str) -> str:
        return get_placeholder_url(self.width, self.height, seed, self.base_url)

    def resolve(
        self,
        asset_type: AssetType | str,
        asset_id: str,
        url: Optional[str],
        seed: Optional[str] = None,
    ) -> str:
        """Register an asset and return the URL to render.

        Re-resolving an already known asset returns its current URL.
        """
        key = self.asset_key(asset_type, asset_id)
        state = self._states.get(key)
        if state is None:
            seed = seed or asset_id
            if url and url.strip():
                state = ImageState(url=url, source=ImageSource.PRIMARY, seed=seed)
            else:
                state = ImageState(
                    url=self._placeholder(seed), source=ImageSource.PLACEHOLDER, seed=seed
                )
            self._states[key] = state
        return state.url

    def state(self, asset_type: AssetType | str, asset_id: str) -> Optional[ImageState]:
        return self._states.get(self.asset_key(asset_type, asset_id))

    async def handle_load_error(
        self, asset_type: AssetType | str, asset_id: str
    ) -> str:
        """React to a failed image load and return the URL to render next.

        Only the first failure for an asset triggers a refresh; later
        failures, in flight or after resolution, return the current URL.
        """
        asset_type = AssetType(asset_type)
        key = self.asset_key(asset_type, asset_id)
        state = self._states.get(key)
        if state is None:
            state = ImageState(url="", source=ImageSource.PRIMARY, seed=asset_id)
            self._states[key] = state

        if state.refresh_requested:
            return state.url

        if state.source == ImageSource.PLACEHOLDER:
            state.refresh_requested = True
            return state.url

        state.refresh_requested = True
        state.refreshing = True
        try:
            data = await self._refresher(asset_type.value, asset_id)
            new_url = (data or {}).get("url")
        except ApiError as e:
            logger.warning(
                "image_refresh_failed",
                asset_type=asset_type.value,
                asset_id=asset_id,
                error=str(e),
            )
            new_url = None
        finally:
            state.refreshing = False

        if new_url:
            state.url = new_url
            state.source = ImageSource.REFRESHED
            logger.debug("image_url_refreshed", asset_type=asset_type.value, asset_id=asset_id)
        else:
            state.url = self._placeholder(state.seed)
            state.source = ImageSource.PLACEHOLDER
        return state.url
