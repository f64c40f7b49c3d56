"""Base classes for configuration and state models.

Kept apart from config.py so that log.py can build its sink models on
them without importing the full configuration.
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from pydantic import BaseModel


@runtime_checkable
class Closeable(Protocol):
    """Anything with a close() method."""

    def close(self) -> None:
        ...


class BaseCloseable(BaseModel):
    """Pydantic model that closes its Closeable fields on close().

    Usable as a context manager. A failure closing one child is
    reported on stderr and the remaining children are still closed,
    so State -> Config -> Logger -> Sink all get released.
    """

    def close(self):
        for field_name in self.__class__.model_fields:
            child = getattr(self, field_name, None)
            if child is None or not isinstance(child, Closeable):
                continue
            try:
                child.close()
            except Exception as e:
                print(f"Warning: Error closing {field_name}: {e}", file=sys.stderr)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):  # noqa: U100
        self.close()
        return False


class BaseConfig(BaseCloseable):
    """Marker base for configuration sections (YAML/env/CLI)."""
    pass


class BaseState(BaseCloseable):
    """Marker base for runtime state sections."""
    pass


__all__ = ["Closeable", "BaseCloseable", "BaseConfig", "BaseState"]
