"""Data models for kubehost."""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LifecycleState(str, Enum):
    """Host state as reported by its backend.

    Always re-derived from the backend; never persisted or cached.
    """

    NONEXISTENT = "Nonexistent"
    RUNNING = "Running"
    STOPPED = "Stopped"
    ERROR = "Error"

    def __str__(self) -> str:
        return self.value


class OsRelease(BaseModel):
    """Fields of an os-release(5) file that kubehost displays."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    version_id: str = ""
    pretty_name: str = ""

    @classmethod
    def parse(cls, content: str) -> "OsRelease":
        """Parse ``KEY=value`` lines; quotes are stripped, unknown keys ignored.

        Raises:
            ValueError: No recognizable key present
        """
        values: dict[str, str] = {}
        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            key = key.strip().lower()
            if key in cls.model_fields:
                values[key] = value.strip().strip("\"'")
        if not values:
            raise ValueError("no os-release fields found")
        return cls(**values)


class HostInfo(BaseModel):
    """Snapshot of local machine resources, used for sizing notices only."""

    model_config = ConfigDict(frozen=True)

    cpus: int = Field(ge=0, description="Logical CPU count")
    memory_mb: int = Field(ge=0, description="Total physical memory in MB")
    disk_size_mb: int = Field(ge=0, description="Total size of / in MB")


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of one command run through a command channel."""

    args: Sequence[str]
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def command(self) -> str:
        return " ".join(self.args)
