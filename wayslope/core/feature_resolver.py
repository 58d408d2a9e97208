"""Feature resolver: joins raw ways with the sealed point index.

Ways failing the tag filter are discarded silently. Ways passing it are
resolved all-or-nothing: a single missing point id drops the whole way with an
UnresolvedPointError, never a truncated geometry.
"""

import numpy as np

from wayslope.core.errors import DegenerateGeometryError, UnresolvedPointError
from wayslope.core.point_index import PointIndex
from wayslope.core.tag_filter import TagFilter
from wayslope.model.coordinate import Coordinate
from wayslope.model.feature import RawFeature, ResolvedFeature

MIN_FEATURE_POINTS = 2


class FeatureResolver:
    """Selects ways by tag and resolves their point ids into coordinates.

    accepts() runs while the extract is streamed, so rejected ways are never
    kept in memory. resolve() runs after the point index is sealed and only
    reads from it, so one resolver can be shared across worker threads.

    Example:
        resolver = FeatureResolver(tag_filter=TagFilter.parse("highway"))
        if resolver.accepts(raw):
            feature = resolver.resolve(raw, index=index)
    """

    def __init__(self, tag_filter: TagFilter) -> None:
        self._tag_filter = tag_filter

    @property
    def tag_filter(self) -> TagFilter:
        return self._tag_filter

    def accepts(self, raw: RawFeature) -> bool:
        """Evaluate the tag filter against the way's tags."""
        return self._tag_filter.matches(raw.tags)

    def resolve(self, raw: RawFeature, index: PointIndex) -> ResolvedFeature:
        """Replace every point id of the way with its coordinate.

        Args:
            raw: Way accepted by the tag filter
            index: Sealed point index

        Returns:
            ResolvedFeature with one coordinate per point id, same order.

        Raises:
            DegenerateGeometryError: Fewer than two point ids.
            UnresolvedPointError: A point id is missing from the index
                (reports the first missing id).
        """
        if len(raw.node_ids) < MIN_FEATURE_POINTS:
            raise DegenerateGeometryError(feature_id=raw.id, point_count=len(raw.node_ids))

        found = index.lookup_many(raw.node_ids)
        if not found.found.all():
            missing = raw.node_ids[int(np.argmin(found.found))]
            raise UnresolvedPointError(feature_id=raw.id, point_id=missing)

        coordinates = tuple(
            Coordinate(lat=lat, lon=lon) for lat, lon in zip(found.lats.tolist(), found.lons.tolist())
        )
        # Most extracts store all points before all ways. Resolution does not
        # rely on it, but points from later blocks are counted so unusual
        # files show up in the run summary.
        forward = int(np.count_nonzero(found.blocks > raw.block_index))
        return ResolvedFeature(
            id=raw.id,
            coordinates=coordinates,
            tags=raw.tags,
            node_ids=raw.node_ids,
            forward_references=forward,
        )
