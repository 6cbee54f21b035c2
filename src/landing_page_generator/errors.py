from __future__ import annotations

from typing import Sequence


class PipelineError(Exception):
    """Base class for errors raised inside the generation pipeline."""


class ValidationError(PipelineError):
    """Business context or design extraction cannot be used."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "validation failed")


class ModelError(PipelineError):
    """The generative model collaborator failed (quota, timeout, safety block)."""

    def __init__(self, message: str, *, transient: bool = True) -> None:
        super().__init__(message)
        self.transient = transient


class ParseError(PipelineError):
    """Model output could not be recovered into structured data."""


class InvariantViolation(PipelineError):
    """Generated section count differs from the extracted section count."""

    def __init__(self, *, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected} sections, model returned {actual}")


class PersistenceWarning(PipelineError):
    """A stage record could not be written to the run store."""


class RunCancelled(PipelineError):
    """Cancellation was requested before the next stage started."""


__all__ = [
    "PipelineError",
    "ValidationError",
    "ModelError",
    "ParseError",
    "InvariantViolation",
    "PersistenceWarning",
    "RunCancelled",
]
