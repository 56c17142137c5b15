"""
Pydantic schemas for the service's HTTP responses.

Field names follow the service's camelCase wire format through aliases;
Python code uses snake_case attributes.
"""

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for service payloads: accept aliases or field names, ignore extras."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TokenGrant(WireModel):
    """Response of GET /project/csrftoken."""

    value: str = Field(alias="csrfToken", min_length=1)
    expires_in: float = Field(alias="expiresIn", gt=0)


class LogFileInfo(WireModel):
    """One entry of the log file listing; size is in KB as reported by the service."""

    name: str
    size: float = 0


class LogFileListing(WireModel):
    """Response of GET /logs/files."""

    files: list[LogFileInfo] = Field(default_factory=list)


class LogReadResult(WireModel):
    """Response of GET /logs/read."""

    lines: list[str] = Field(default_factory=list)
    last_id: int | None = Field(default=None, alias="lastId")
    error: str | None = None


class DeploymentHistoryEntry(WireModel):
    """One past deployment. status == 0 means success."""

    timestamp: str | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    file_size: int = Field(default=0, alias="fileSize")
    user: str | None = None
    hostname: str | None = None
    status: int = 0
    status_message: str | None = Field(default=None, alias="statusMessage")

    @property
    def succeeded(self) -> bool:
        return self.status == 0


class DeploymentHistory(WireModel):
    """Response of GET /project/history."""

    history: list[DeploymentHistoryEntry] = Field(default_factory=list)
    total_count: int = Field(default=0, alias="totalCount")


class CommandReply(WireModel):
    """Response of POST /project/manager."""

    success: bool = False
    message: str | None = None
    error: str | None = None
