"""Error taxonomy shared by every pipeline stage."""
from __future__ import annotations

__all__ = [
    "TipPipelineError",
    "SchemaMismatch",
    "MalformedTimestamp",
    "UnknownCategory",
    "EmptyPartition",
    "StageFailure",
]


class TipPipelineError(Exception):
    """Base class; ``affected`` is the number of records involved."""

    def __init__(self, message: str, *, affected: int = 0):
        super().__init__(message)
        self.affected = int(affected)


class SchemaMismatch(TipPipelineError, ValueError):
    """Raw rows do not have the expected number of fields."""

    def __init__(self, message: str, *, source: str | None = None, affected: int = 0):
        super().__init__(message, affected=affected)
        self.source = source


class MalformedTimestamp(TipPipelineError, ValueError):
    """One or more timestamps do not match the fixed textual pattern."""

    def __init__(self, message: str, *, examples: list[str] | None = None, affected: int = 0):
        super().__init__(message, affected=affected)
        self.examples = list(examples or [])


class UnknownCategory(TipPipelineError, ValueError):
    """A category value was seen that the frozen mapping does not contain."""

    def __init__(self, unknown: dict[str, list[str]], *, affected: int = 0):
        detail = "; ".join(f"{field}={values[:5]}" for field, values in unknown.items())
        super().__init__(f"Unseen category values after mapping freeze: {detail}", affected=affected)
        self.unknown = unknown


class EmptyPartition(TipPipelineError, ValueError):
    """A train/test partition would hold zero rows."""


class StageFailure(TipPipelineError):
    """Wraps the error that aborted a pipeline stage."""

    def __init__(self, stage: str, cause: BaseException, *, affected: int = 0):
        super().__init__(f"stage '{stage}' failed ({affected} records affected): {cause}", affected=affected)
        self.stage = stage
        self.cause = cause
