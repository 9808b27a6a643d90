"""Unit tests for record loading."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from rise_eval.services.errors import EvaluationError, NetworkError, NotFoundError
from rise_eval.services.metric_cache import MetricCatalogCache
from rise_eval.services.records_service import ALL_ASSIGNED, RecordsLoader, RecordsService


@pytest.fixture
def service(mock_client, metrics, assignment_payload, assigned_images_payload):
    """RecordsService over a mocked client and a primed catalog fetcher."""
    mock_client.get_assignment_details.return_value = assignment_payload
    mock_client.get_assigned_images.return_value = assigned_images_payload
    cache = MetricCatalogCache(AsyncMock(return_value=metrics))
    return RecordsService(mock_client, cache)


class TestResolveRecords:
    """Tests for RecordsService.resolve_records."""

    @pytest.mark.asyncio
    async def test_assignment_id(self, service, mock_client):
        """Test a specific id loads that assignment."""
        records = await service.resolve_records("asg-1")

        assert [r.id for r in records] == ["asg-1"]
        mock_client.get_assignment_details.assert_awaited_once_with("asg-1")
        mock_client.get_assigned_images.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_all_loads_unified_list(self, service, mock_client):
        """Test the 'all' id loads every assigned image."""
        records = await service.resolve_records(ALL_ASSIGNED)

        assert [r.id for r in records] == ["asg-1", "asg-2"]
        mock_client.get_assignment_details.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found_falls_back_to_unified_list(self, service, mock_client):
        """Test an id that is not an assignment falls back to the unified list."""
        mock_client.get_assignment_details.side_effect = NotFoundError("HTTP 404", 404)

        records = await service.resolve_records("img-legacy-7")

        assert len(records) == 2
        mock_client.get_assigned_images.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, service, mock_client):
        """Test failures other than 404 are not masked by the fallback."""
        mock_client.get_assignment_details.side_effect = NetworkError("down")

        with pytest.raises(NetworkError):
            await service.resolve_records("asg-1")

        mock_client.get_assigned_images.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_assignment_is_error(self, service, mock_client):
        """Test an assignment with no images is reported as an error."""
        mock_client.get_assignment_details.return_value = {"images": []}

        with pytest.raises(EvaluationError) as exc_info:
            await service.resolve_records("asg-1")

        assert exc_info.value.user_message == "No records returned from API"

    @pytest.mark.asyncio
    async def test_empty_unified_list_is_not_error(self, service, mock_client):
        """Test an empty unified list is an empty result."""
        mock_client.get_assigned_images.return_value = {"images": []}

        with capture_logs() as logs:
            records = await service.resolve_records(ALL_ASSIGNED)

        assert records == []
        assert any(e["event"] == "no_assigned_images" for e in logs)

    @pytest.mark.asyncio
    async def test_metric_failure_propagates(self, mock_client, assignment_payload):
        """Test a failed catalog fetch fails the load."""
        mock_client.get_assignment_details.return_value = assignment_payload
        cache = MetricCatalogCache(AsyncMock(side_effect=NetworkError("down")))

        with pytest.raises(NetworkError):
            await RecordsService(mock_client, cache).resolve_records("asg-1")


class TestRecordsLoader:
    """Tests for the per-view single-fetch loader."""

    @pytest.mark.asyncio
    async def test_loads_once_per_id(self, service, mock_client, notifier):
        """Test repeat and concurrent loads of one id share a single fetch."""
        loader = RecordsLoader(service, notifier)

        results = await asyncio.gather(loader.load("asg-1"), loader.load("asg-1"))
        again = await loader.load("asg-1")

        assert results[0] == results[1] == again
        assert loader.is_loaded("asg-1") is True
        mock_client.get_assignment_details.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_distinct_ids_fetch_separately(self, service, mock_client, notifier):
        """Test each id has its own fetch."""
        loader = RecordsLoader(service, notifier)

        await loader.load("asg-1")
        await loader.load(ALL_ASSIGNED)

        mock_client.get_assignment_details.assert_awaited_once()
        mock_client.get_assigned_images.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_notifies_and_allows_retry(
        self, service, mock_client, notifier, notifications, assignment_payload
    ):
        """Test a failed load notifies once and may be retried."""
        mock_client.get_assignment_details.side_effect = [
            NetworkError("down"),
            assignment_payload,
        ]
        loader = RecordsLoader(service, notifier)

        with pytest.raises(NetworkError):
            await loader.load("asg-1")

        assert loader.is_loaded("asg-1") is False
        assert [n.message for n in notifications] == ["Failed to load case details"]
        assert notifications[0].description == "No response received from the server."

        records = await loader.load("asg-1")
        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_unexpected_failure_allows_retry(
        self, service, mock_client, notifier, notifications, assignment_payload
    ):
        """Test a load failing outside the error taxonomy is not cached."""
        mock_client.get_assignment_details.side_effect = [
            ValueError("malformed body"),
            assignment_payload,
        ]
        loader = RecordsLoader(service, notifier)

        with capture_logs() as logs, pytest.raises(ValueError):
            await loader.load("asg-1")

        assert loader.is_loaded("asg-1") is False
        assert [n.message for n in notifications] == ["Failed to load case details"]
        failed = [e for e in logs if e["event"] == "records_load_failed"]
        assert failed[0]["error_type"] == "ValueError"

        records = await loader.load("asg-1")
        assert len(records) == 1
        assert loader.is_loaded("asg-1") is True

    @pytest.mark.asyncio
    async def test_missing_id_rejected(self, service, notifier):
        """Test an empty worklist id is rejected."""
        loader = RecordsLoader(service, notifier)

        with pytest.raises(ValueError):
            await loader.load("")

    @pytest.mark.asyncio
    async def test_missing_image_url_warned(self, service, mock_client, notifier):
        """Test records without an image URL are logged."""
        mock_client.get_assignment_details.return_value = {
            "images": [{"id": "gt-1", "image_id": "CXR-9", "model_outputs": []}]
        }
        loader = RecordsLoader(service, notifier)

        with capture_logs() as logs:
            await loader.load("asg-1")

        warnings = [e for e in logs if e["event"] == "record_missing_image_url"]
        assert warnings[0]["image_id"] == "CXR-9"
