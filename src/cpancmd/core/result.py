"""Result types for CPAN.pm build/install attempts."""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel


class Outcome(str, Enum):
    """How the last line of captured output reads."""

    SUCCESS = "success"
    FAILURE = "failure"
    VAGUE = "vague"


class AttemptResult(BaseModel):
    """One CPAN.pm method call on one module."""

    module: str
    method: str
    forced: bool = False
    outcome: Outcome
    matched: str | None = None
    returncode: int | None = None
    log_file: Path | None = None
    timestamp: datetime

    @property
    def failed(self) -> bool:
        """Only a recognised failure counts; VAGUE does not."""
        return self.outcome is Outcome.FAILURE
