"""Point coordinate index: point id -> coordinate for a whole extract.

Build phase and query phase are separate types:
- PointIndexBuilder is owned by the single thread streaming the extract.
  Points are appended block by block into NumPy chunks (no per-point objects).
- seal() sorts the ids once, drops duplicate ids (first insertion wins) and
  returns a PointIndex whose arrays are read-only. The sealed index is shared
  by all worker threads without locking.

Memory is roughly 28 bytes per point (id, lat, lon, block), so a country
extract with tens of millions of points fits comfortably in RAM where a dict
of Python objects would not.
"""

import logging
from typing import NamedTuple, Optional, Sequence

import numpy as np

from wayslope.constants import LogConfig
from wayslope.core.errors import DuplicatePointIdError, IndexSealedError
from wayslope.model.coordinate import Coordinate

logger = logging.getLogger(__name__)


class PointLookup(NamedTuple):
    """Vectorized lookup result; entries where found is False are undefined."""

    lats: np.ndarray
    lons: np.ndarray
    blocks: np.ndarray
    found: np.ndarray


class PointIndex:
    """Read-only, id-sorted point arena.

    Example:
        index = builder.seal()
        coord = index.lookup(123456)  # Coordinate or None
    """

    def __init__(
        self,
        ids: np.ndarray,
        lats: np.ndarray,
        lons: np.ndarray,
        blocks: np.ndarray,
        diagnostics: Sequence[DuplicatePointIdError] = (),
    ) -> None:
        for array in (ids, lats, lons, blocks):
            array.flags.writeable = False
        self._ids = ids
        self._lats = lats
        self._lons = lons
        self._blocks = blocks
        self.diagnostics: tuple[DuplicatePointIdError, ...] = tuple(diagnostics)

    def __len__(self) -> int:
        return int(self._ids.size)

    def __contains__(self, point_id: object) -> bool:
        return isinstance(point_id, (int, np.integer)) and self._position(int(point_id)) is not None

    def _position(self, point_id: int) -> Optional[int]:
        pos = int(np.searchsorted(self._ids, point_id))
        if pos < self._ids.size and self._ids[pos] == point_id:
            return pos
        return None

    def lookup(self, point_id: int) -> Optional[Coordinate]:
        """Coordinate for a point id, or None if the id was never inserted."""
        pos = self._position(point_id)
        if pos is None:
            return None
        return Coordinate(lat=float(self._lats[pos]), lon=float(self._lons[pos]))

    def block_of(self, point_id: int) -> Optional[int]:
        """Index of the extract block the point was read from."""
        pos = self._position(point_id)
        return None if pos is None else int(self._blocks[pos])

    def lookup_many(self, point_ids: Sequence[int]) -> PointLookup:
        """Resolve many ids at once with a single binary search pass."""
        query = np.asarray(point_ids, dtype=np.int64)
        if self._ids.size == 0:
            empty = np.zeros(query.size)
            return PointLookup(empty, empty, empty.astype(np.int32), np.zeros(query.size, dtype=bool))

        pos = np.minimum(np.searchsorted(self._ids, query), self._ids.size - 1)
        found = self._ids[pos] == query
        return PointLookup(self._lats[pos], self._lons[pos], self._blocks[pos], found)


class PointIndexBuilder:
    """Mutable build phase of the point index.

    Not thread-safe; only the thread decoding the extract may insert.
    """

    def __init__(self) -> None:
        self._id_chunks: list[np.ndarray] = []
        self._lat_chunks: list[np.ndarray] = []
        self._lon_chunks: list[np.ndarray] = []
        self._block_chunks: list[np.ndarray] = []
        self._pending: list[tuple[int, float, float, int]] = []
        self._count = 0
        self._sealed = False

    def __len__(self) -> int:
        """Number of insertions so far, duplicates included."""
        return self._count

    def _check_open(self) -> None:
        if self._sealed:
            raise IndexSealedError("point index is sealed; no further insertions allowed")

    def insert(self, point_id: int, coordinate: Coordinate, block_index: int = -1) -> None:
        """Insert a single point.

        Duplicate ids are detected when the index is sealed.
        """
        self._check_open()
        self._pending.append((point_id, coordinate.lat, coordinate.lon, block_index))
        self._count += 1

    def insert_many(self, ids: np.ndarray, lats: np.ndarray, lons: np.ndarray, block_index: int = -1) -> None:
        """Insert one decoded block's points."""
        self._check_open()
        if not ids.size == lats.size == lons.size:
            raise ValueError(f"Mismatched point arrays: {ids.size} ids, {lats.size} lats, {lons.size} lons")
        if ids.size == 0:
            return
        self._flush_pending()
        self._id_chunks.append(np.asarray(ids, dtype=np.int64))
        self._lat_chunks.append(np.asarray(lats, dtype=np.float64))
        self._lon_chunks.append(np.asarray(lons, dtype=np.float64))
        self._block_chunks.append(np.full(ids.size, block_index, dtype=np.int32))
        self._count += int(ids.size)

    def _flush_pending(self) -> None:
        if not self._pending:
            return
        ids, lats, lons, blocks = zip(*self._pending)
        self._id_chunks.append(np.array(ids, dtype=np.int64))
        self._lat_chunks.append(np.array(lats, dtype=np.float64))
        self._lon_chunks.append(np.array(lons, dtype=np.float64))
        self._block_chunks.append(np.array(blocks, dtype=np.int32))
        self._pending = []

    def seal(self) -> PointIndex:
        """Sort, deduplicate and freeze the index.

        The stable sort keeps insertion order within equal ids, so the first
        element of every run of equal ids is the earliest insertion; every
        later one is rejected with one DuplicatePointIdError.

        Returns:
            The read-only PointIndex. The builder cannot be used afterwards.
        """
        self._check_open()
        self._flush_pending()
        self._sealed = True

        ids = np.concatenate(self._id_chunks) if self._id_chunks else np.empty(0, dtype=np.int64)
        lats = np.concatenate(self._lat_chunks) if self._lat_chunks else np.empty(0, dtype=np.float64)
        lons = np.concatenate(self._lon_chunks) if self._lon_chunks else np.empty(0, dtype=np.float64)
        blocks = np.concatenate(self._block_chunks) if self._block_chunks else np.empty(0, dtype=np.int32)
        self._id_chunks = self._lat_chunks = self._lon_chunks = self._block_chunks = []

        order = np.argsort(ids, kind="stable")
        ids, lats, lons, blocks = ids[order], lats[order], lons[order], blocks[order]

        diagnostics: list[DuplicatePointIdError] = []
        if ids.size > 1:
            duplicate = np.zeros(ids.size, dtype=bool)
            duplicate[1:] = ids[1:] == ids[:-1]
            if duplicate.any():
                # Position of the kept (first) entry for every element of a run
                run_start = np.maximum.accumulate(np.where(duplicate, 0, np.arange(ids.size)))
                for pos in np.flatnonzero(duplicate).tolist():
                    kept = int(run_start[pos])
                    diagnostics.append(
                        DuplicatePointIdError(
                            point_id=int(ids[pos]),
                            kept=(float(lats[kept]), float(lons[kept])),
                            rejected=(float(lats[pos]), float(lons[pos])),
                        )
                    )
                keep = ~duplicate
                ids, lats, lons, blocks = ids[keep], lats[keep], lons[keep], blocks[keep]

        for diagnostic in diagnostics[: LogConfig.MAX_LOGGED_DIAGNOSTICS]:
            logger.warning(diagnostic.message)
        if len(diagnostics) > LogConfig.MAX_LOGGED_DIAGNOSTICS:
            logger.warning(f"... {len(diagnostics) - LogConfig.MAX_LOGGED_DIAGNOSTICS} more duplicate point ids")

        logger.info(f"Sealed point index: {ids.size} points ({len(diagnostics)} duplicates rejected)")
        return PointIndex(ids=ids, lats=lats, lons=lons, blocks=blocks, diagnostics=diagnostics)
