"""Backend REST client for the evaluation service."""

from typing import Any, Optional

import httpx
import structlog

from rise_eval.config import Settings, get_settings
from rise_eval.models.auth import (
    AssignmentOverview,
    AssignmentSummary,
    LoginResponse,
    UserDetails,
)
from rise_eval.models.metric import Metric, WireEvaluation
from rise_eval.services.errors import (
    ApiError,
    AuthenticationError,
    NetworkError,
    NotFoundError,
    error_for_status,
)

logger = structlog.get_logger(__name__)

LOGIN_PATH = "auth/login/"
REFRESH_ASSET_TYPES = ("image", "model", "stage2", "s3_record")


class AuthSession:
    """Local session state: bearer token and the logged-in user."""

    def __init__(self, token: str = ""):
        self.token = token
        self.user_id: Optional[str] = None
        self.role: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def store(self, login: LoginResponse) -> None:
        self.token = login.access_token
        self.user_id = login.user.id
        self.role = login.user.role

    def clear(self) -> None:
        """Forget all local session state."""
        self.token = ""
        self.user_id = None
        self.role = None


class EvaluationApiClient:
    """Async client for the evaluation backend.

    Every call raises an ApiError subclass on failure and never retries;
    a 401 clears the session before raising.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[AuthSession] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session or AuthSession(self.settings.auth_token)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_root,
                timeout=httpx.Timeout(self.settings.api_timeout_seconds),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "EvaluationApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict] = None,
    ) -> Any:
        """Send one request and decode the JSON body.

        Args:
            method: HTTP method
            path: Path relative to the API root (no leading slash)
            payload: Optional JSON body

        Returns:
            Decoded JSON body, or None for an empty body

        Raises:
            ApiError: On transport failure or a non-2xx status
        """
        headers = {}
        if path != LOGIN_PATH and self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"

        client = await self._get_client()
        try:
            response = await client.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("api_timeout", method=method, path=path, error=str(e))
            raise NetworkError(f"Timeout calling {path}") from e
        except httpx.HTTPError as e:
            logger.error(
                "api_transport_error",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NetworkError(f"No response from {path}: {e}") from e

        data = _decode_body(response)

        if response.status_code >= 400:
            error = error_for_status(response.status_code, data)
            if isinstance(error, AuthenticationError):
                self.session.clear()
                logger.warning("api_auth_expired", path=path)
            elif isinstance(error, NotFoundError):
                logger.debug("api_not_found", method=method, path=path)
            else:
                logger.error(
                    "api_request_failed",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                    detail=error.detail,
                )
            raise error

        return data

    # Auth and users

    async def login(self, email: str, password: Optional[str] = None) -> LoginResponse:
        """Log in and store the access token on the session."""
        payload = {"email": email}
        if password:
            payload["password"] = password
        data = await self._request("POST", LOGIN_PATH, payload)
        login = LoginResponse.model_validate(data)
        self.session.store(login)
        logger.info("login_success", user_id=login.user.id, role=login.user.role)
        return login

    async def get_user_details(self, user_id: Optional[str] = None) -> UserDetails:
        """Get a user by id, or the current user when no id is given."""
        path = f"users/{user_id}/" if user_id else "auth/me/"
        data = await self._request("GET", path)
        return UserDetails.model_validate(data)

    async def is_supervisor(self, user_id: str) -> bool:
        """Check whether a user has the supervisor role; False on error."""
        try:
            user = await self.get_user_details(user_id)
        except ApiError as e:
            logger.warning("supervisor_check_failed", user_id=user_id, error=str(e))
            return False
        return user.role == "supervisor"

    async def test_connection(self) -> bool:
        """Check backend connectivity via the metrics endpoint."""
        try:
            await self._request("GET", "metrics/")
        except ApiError as e:
            logger.warning("backend_connection_failed", error=str(e))
            return False
        return True

    # Metrics

    async def get_metrics(self) -> list[Metric]:
        """Fetch the global metric catalog.

        Returns an empty list only when the backend reports no metrics;
        failures propagate.
        """
        data = await self._request("GET", "metrics/")
        raw_metrics = (data or {}).get("metrics") or []
        return [Metric.model_validate(m) for m in raw_metrics]

    # Assignments and evaluations

    async def get_evaluator_assignments(self) -> AssignmentOverview:
        """Get the current evaluator's assignments with per-status counts."""
        data = await self._request("GET", "evaluations/my-assignments/")
        overview = AssignmentOverview()

        for assignment in (data or {}).get("assignments") or []:
            evaluation_set = assignment.get("evaluation_set") or {}
            progress = assignment.get("progress") or {}
            status = assignment.get("status") or "pending"

            if status == "completed":
                overview.completed_cases += 1
            elif status == "in_progress":
                overview.in_progress_cases += 1
            else:
                overview.pending_cases += 1
            overview.total_cases += 1

            overview.cases.append(
                AssignmentSummary(
                    id=str(assignment["id"]),
                    study_id=evaluation_set.get("study_id") or "",
                    evaluation_set_id=evaluation_set.get("id"),
                    status=status,
                    completed_evaluations=progress.get("completed_evaluations", 0),
                    total_evaluations=progress.get("total_evaluations", 0),
                    last_updated=assignment.get("last_activity_at")
                    or assignment.get("assigned_at"),
                )
            )

        return overview

    async def get_assignment_details(self, assignment_id: str) -> dict:
        """Get the raw detail payload of one assignment.

        A 404 here is the expected signal that the id is not an
        assignment; it is logged as a warning and re-raised.
        """
        try:
            return await self._request("GET", f"evaluations/assignments/{assignment_id}/")
        except NotFoundError:
            logger.warning("assignment_not_found", assignment_id=assignment_id)
            raise

    async def get_assigned_images(self) -> dict:
        """Get the raw unified list of every image assigned to the evaluator."""
        return await self._request("GET", "evaluations/assigned-images/")

    async def save_evaluations(
        self,
        assignment_id: str,
        ground_truth_image_id: str,
        model_output_id: str,
        evaluations: list[WireEvaluation],
    ) -> Any:
        """Upsert the scores of one model output."""
        payload = {
            "assignment_id": assignment_id,
            "ground_truth_image_id": ground_truth_image_id,
            "model_output_id": model_output_id,
            "evaluations": [e.model_dump() for e in evaluations],
        }
        try:
            return await self._request("POST", "evaluations/bulk/", payload)
        except ApiError as e:
            logger.error(
                "save_evaluations_failed",
                assignment_id=assignment_id,
                model_output_id=model_output_id,
                status_code=e.status_code,
                detail=e.detail,
            )
            raise

    async def start_assignment(self, assignment_id: str) -> None:
        """Mark an assignment as started; failures are logged only."""
        try:
            await self._request("POST", f"evaluations/assignments/{assignment_id}/start/")
        except ApiError as e:
            logger.warning("start_assignment_failed", assignment_id=assignment_id, error=str(e))

    async def complete_assignment(self, assignment_id: str) -> Any:
        """Mark an assignment as completed."""
        return await self._request("POST", f"evaluations/assignments/{assignment_id}/complete/")

    async def refresh_image_url(self, asset_type: str, asset_id: str) -> dict:
        """Request a fresh URL for an expired or unreachable asset.

        Args:
            asset_type: One of image, model, stage2, s3_record
            asset_id: Asset identifier

        Returns:
            Response body, normally ``{"url": ...}``
        """
        if asset_type not in REFRESH_ASSET_TYPES:
            raise ValueError(f"Unknown asset type: {asset_type}")
        data = await self._request(
            "POST", "evaluations/refresh-url/", {"type": asset_type, "id": asset_id}
        )
        return data or {}

    # Stage 2

    async def get_stage2_images(self) -> dict:
        """Get the raw stage-2 image list with counters."""
        return await self._request("GET", "stage2/images/")

    async def save_stage2_evaluation(self, image_id: str, score: int) -> Any:
        """Save an AI-likelihood score for one stage-2 image."""
        return await self._request(
            "POST", "stage2/evaluations/", {"image_id": image_id, "score": score}
        )


def _decode_body(response: httpx.Response) -> Any:
    """Decode a JSON body, tolerating empty or non-JSON content."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
