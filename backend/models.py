"""
Pydantic schemas shared by the FastAPI endpoints.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BuildRequest(BaseModel):
    """Incoming payload when requesting a new app."""

    prompt: str = Field(..., min_length=3, description="User text describing the app idea or the change.")
    appName: Optional[str] = Field(
        None, pattern=r"^[A-Za-z0-9]+$", description="Existing app an edit or fix request applies to."
    )


class FixRequest(BaseModel):
    """Re-run the build-fix loop on an app generated earlier."""

    appName: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9]+$", description="Generated app name.")


class JobStatus(BaseModel):
    jobId: str
    status: str
    progress: int = 0
    logs: List[str] = Field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class HistoryMessage(BaseModel):
    role: str
    content: str
    createdAt: str


class IntegrationSummary(BaseModel):
    """One registered provider and the apps configured for it."""

    id: str
    name: str
    description: str = ""
    capabilities: List[str] = Field(default_factory=list)
    apps: List[str] = Field(default_factory=list)


__all__ = [
    "BuildRequest",
    "FixRequest",
    "JobStatus",
    "HistoryMessage",
    "IntegrationSummary",
]
