"""Authentication and user models."""

from typing import Optional

from pydantic import BaseModel, Field


class UserSummary(BaseModel):
    """User reference returned with a login."""

    id: str
    role: str = "evaluator"


class LoginResponse(BaseModel):
    """Response from the login endpoint."""

    access_token: str
    user: UserSummary


class UserDetails(BaseModel):
    """Current or other user details."""

    id: str
    name: str = ""
    email: str = ""
    role: str = "evaluator"


class AssignmentSummary(BaseModel):
    """One assignment in an evaluator's worklist overview."""

    id: str
    study_id: str = ""
    evaluation_set_id: Optional[str] = None
    status: str = "pending"
    completed_evaluations: int = 0
    total_evaluations: int = 0
    last_updated: Optional[str] = None


class AssignmentOverview(BaseModel):
    """Evaluator assignments with per-status counts."""

    cases: list[AssignmentSummary] = Field(default_factory=list)
    total_cases: int = 0
    pending_cases: int = 0
    in_progress_cases: int = 0
    completed_cases: int = 0
