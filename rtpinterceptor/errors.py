"""Aggregation of several errors into one."""

from __future__ import annotations

from typing import Iterable, Optional


class MultiError(Exception):
    """An error made of several errors."""

    def __init__(self, errors: Iterable[BaseException]):
        self.errors = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        parts = [str(e) for e in self.errors if e is not None]
        if not parts:
            return "multiError must contain multiple error but is empty"
        return "\n".join(parts)

    def contains(self, error: BaseException) -> bool:
        """Whether ``error`` is one of the errors, directly, as a cause or nested."""
        for err in self.errors:
            cause: Optional[BaseException] = err
            while cause is not None:
                if cause is error:
                    return True
                cause = cause.__cause__
            if isinstance(err, MultiError) and err.contains(error):
                return True
        return False


def flatten_errors(errors: Iterable[Optional[BaseException]]) -> Optional[MultiError]:
    """Combine the non-None errors into a MultiError, or None if there are none."""
    present = [e for e in errors if e is not None]
    return MultiError(present) if present else None