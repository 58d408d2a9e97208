"""Exception taxonomy for the slope pipeline.

Two families share the ``WaySlopeError`` base:

- ``FatalError``: aborts the whole run (bad extract block, unreadable or
  unsupported raster, malformed filter). Nothing is written.
- ``RecoverableError``: affects a single point or feature. Instances are
  collected as diagnostics and reported next to the successful output.

Every exception keeps its structured context and exposes ``to_error_dict()``
for logging and output.
"""

from __future__ import annotations

from typing import Any


class WaySlopeError(Exception):
    """Base exception for all wayslope errors.

    Attributes:
        message: Human-readable error description.
        context: Structured fields identifying where the error happened.
    """

    #: Machine-readable code, overridden per subclass.
    code: str = "WAYSLOPE_ERROR"

    def __init__(self, message: str = "", **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    @property
    def category(self) -> str:
        if isinstance(self, FatalError):
            return "fatal"
        if isinstance(self, RecoverableError):
            return "recoverable"
        return "internal"

    def to_error_dict(self) -> dict[str, Any]:
        """Return a structured payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "message": self.message,
            **self.context,
        }


class FatalError(WaySlopeError):
    """Run-aborting failure."""


class RecoverableError(WaySlopeError):
    """Per-entity data fault; the run continues."""


# ---------------------------------------------------------------------------
# Fatal
# ---------------------------------------------------------------------------


class ExtractDecodeError(FatalError):
    """A block of the map extract could not be decoded."""

    code = "EXTRACT_DECODE_FAILED"

    def __init__(self, message: str, *, source: str, block_index: int, offset: int) -> None:
        super().__init__(
            f"{source}: block {block_index} at byte offset {offset}: {message}",
            source=source,
            block_index=block_index,
            offset=offset,
        )
        self.source = source
        self.block_index = block_index
        self.offset = offset


class RasterLoadError(FatalError):
    """The elevation raster could not be read."""

    code = "RASTER_LOAD_FAILED"

    def __init__(self, message: str, *, source: str) -> None:
        super().__init__(f"{source}: {message}", source=source)
        self.source = source


class UnsupportedRasterError(FatalError):
    """The raster is readable but not usable without reprojection."""

    code = "RASTER_UNSUPPORTED"

    def __init__(self, message: str, *, source: str) -> None:
        super().__init__(f"{source}: {message}", source=source)
        self.source = source


class FilterParseError(FatalError):
    """The tag filter expression is malformed."""

    code = "FILTER_PARSE_FAILED"

    def __init__(self, message: str, *, expression: str, term: str) -> None:
        super().__init__(f"{message}: {term!r} in filter {expression!r}", expression=expression, term=term)
        self.expression = expression
        self.term = term


# ---------------------------------------------------------------------------
# Recoverable
# ---------------------------------------------------------------------------


class DuplicatePointIdError(RecoverableError):
    """A point id was inserted twice; the first coordinate was kept."""

    code = "DUPLICATE_POINT_ID"

    def __init__(
        self,
        point_id: int,
        kept: tuple[float, float],
        rejected: tuple[float, float],
    ) -> None:
        super().__init__(
            f"duplicate point id {point_id}: kept {kept}, rejected {rejected}",
            point_id=point_id,
            kept=list(kept),
            rejected=list(rejected),
        )
        self.point_id = point_id
        self.kept = kept
        self.rejected = rejected


class UnresolvedPointError(RecoverableError):
    """A feature references a point id missing from the extract."""

    code = "UNRESOLVED_POINT"

    def __init__(self, feature_id: int, point_id: int) -> None:
        super().__init__(
            f"feature {feature_id} references unknown point {point_id}",
            feature_id=feature_id,
            point_id=point_id,
        )
        self.feature_id = feature_id
        self.point_id = point_id


class DegenerateGeometryError(RecoverableError):
    """A feature has fewer than two points and cannot form a segment."""

    code = "DEGENERATE_GEOMETRY"

    def __init__(self, feature_id: int, point_count: int) -> None:
        super().__init__(
            f"feature {feature_id} has {point_count} point(s), at least 2 required",
            feature_id=feature_id,
            point_count=point_count,
        )
        self.feature_id = feature_id
        self.point_count = point_count


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


class IndexSealedError(WaySlopeError):
    """The point index was modified after it was sealed."""

    code = "INDEX_SEALED"
