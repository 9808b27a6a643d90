"""Pytest configuration and fixtures."""

import os
from typing import Generator
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("RISE_API_BASE_URL", "http://test")

from rise_eval.config import Settings  # noqa: E402
from rise_eval.models.metric import Metric  # noqa: E402
from rise_eval.services.api_client import EvaluationApiClient  # noqa: E402
from rise_eval.services.notification_service import Notification, Notifier  # noqa: E402

METRIC_NAMES = [
    "Anatomical Validity",
    "Pathology Presence",
    "Location Concordance",
    "Internal Consistency",
    "Similarity Index",
]
MODEL_LABELS = ["A", "B", "C", "D", "E", "F"]


@pytest.fixture
def settings() -> Settings:
    """Settings with explicit test values."""
    return Settings(
        api_base_url="http://test",
        auth_token="",
        score_min=0,
        score_max=5,
        placeholder_base_url="https://picsum.photos",
        notification_dedupe_seconds=5.0,
    )


@pytest.fixture
def metrics() -> list[Metric]:
    """Five-metric catalog used by the evaluation workflow."""
    return [
        Metric(id=f"metric-{i + 1}", name=name, description=f"{name} guideline")
        for i, name in enumerate(METRIC_NAMES)
    ]


@pytest.fixture
def full_scores(metrics) -> dict[str, int]:
    """A score for every metric in the catalog."""
    return {m.id: 1 for m in metrics}


@pytest.fixture
def assignment_payload() -> dict:
    """Assignment detail body: one image with six unscored model outputs."""
    return {
        "images": [
            {
                "id": "gt-internal-1",
                "image_id": "CXR-0001",
                "ground_truth_image_url": "https://cdn.test/gt/1.png",
                "progress": {"status": "pending"},
                "ground_truth": {
                    "findings": "Right lower lobe consolidation.",
                    "impressions": "Pneumonia.",
                },
                "model_outputs": [
                    {
                        "id": f"mo-{label}",
                        "response_text": f"Report from model {label}",
                        "display_label": label,
                        "generated_image_url": f"https://cdn.test/mo/{label}.png",
                        "is_completed": False,
                        "evaluations": {},
                    }
                    for label in MODEL_LABELS
                ],
            }
        ]
    }


@pytest.fixture
def assigned_images_payload() -> dict:
    """Unified assigned-images body spanning two assignments."""
    return {
        "images": [
            {
                "id": "gt-internal-1",
                "assignment_id": "asg-1",
                "image_id": "CXR-0001",
                "ground_truth_image_url": "https://cdn.test/gt/1.png",
                "progress": {"status": "in_progress"},
                "ground_truth": {"findings": "Cardiomegaly.", "impressions": "Enlarged heart."},
                "model_outputs": [
                    {
                        "id": "mo-1a",
                        "response_text": "Report 1a",
                        "display_label": "A",
                        "generated_image_url": "https://cdn.test/mo/1a.png",
                        "is_completed": True,
                        "evaluations": {
                            "anatomical_validity": 1,
                            "pathology_presence": "1",
                            "location_concordance": 0,
                            "internal_consistency": 1,
                            "similarity_index": 1,
                        },
                    },
                    {
                        "id": "mo-1b",
                        "response_text": "Report 1b",
                        "display_label": "B",
                        "generated_image_url": "",
                        "is_completed": False,
                        "evaluations": {"anatomical_validity": 0},
                    },
                ],
            },
            {
                "id": "gt-internal-2",
                "assignment_id": "asg-2",
                "image_id": "CXR-0002",
                "ground_truth_image_url": "https://cdn.test/gt/2.png",
                "progress": {"status": "pending"},
                "ground_truth": {"findings": "No acute findings."},
                "model_outputs": [
                    {
                        "id": "mo-2a",
                        "response_text": "Report 2a",
                        "display_label": "A",
                        "is_completed": False,
                    },
                    {
                        "id": "mo-2b",
                        "response_text": "Report 2b",
                        "display_label": "B",
                        "is_completed": False,
                    },
                ],
            },
        ],
        "total_count": 2,
        "completed_count": 0,
    }


@pytest.fixture
def mock_client() -> MagicMock:
    """API client double; async methods are AsyncMocks."""
    client = MagicMock(spec=EvaluationApiClient)
    client.save_evaluations.return_value = {"status": "ok"}
    client.complete_assignment.return_value = {"status": "completed"}
    return client


@pytest.fixture
def notifications() -> list[Notification]:
    """Notifications delivered during a test."""
    return []


@pytest.fixture
def notifier(notifications) -> Generator[Notifier, None, None]:
    """Notifier that records into ``notifications``."""
    yield Notifier(sinks=[notifications.append], dedupe_seconds=5.0)
