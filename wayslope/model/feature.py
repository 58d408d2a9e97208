"""Linear features before and after point resolution.

Features reference points by id (the point index is the arena that owns the
coordinates). Resolution replaces every id with its coordinate, one-to-one.
"""

from dataclasses import dataclass, field

from wayslope.model.coordinate import Coordinate


@dataclass(frozen=True)
class RawFeature:
    """A way as decoded from the extract.

    Attributes:
        id: Way id
        node_ids: Ordered point ids; a closed way repeats its first id at the end
        tags: Tag set (unique keys)
        block_index: Index of the file block the way was read from
    """

    id: int
    node_ids: tuple[int, ...]
    tags: dict[str, str] = field(default_factory=dict, hash=False)
    block_index: int = 0


@dataclass(frozen=True)
class ResolvedFeature:
    """A way whose point ids have all been resolved to coordinates.

    Attributes:
        id: Way id
        coordinates: One coordinate per entry of node_ids, same order
        tags: Tag set
        node_ids: Point ids in way order
        forward_references: Points that came from a later file block than the way
    """

    id: int
    coordinates: tuple[Coordinate, ...]
    tags: dict[str, str] = field(default_factory=dict, hash=False)
    node_ids: tuple[int, ...] = ()
    forward_references: int = 0

    def __post_init__(self) -> None:
        if self.node_ids and len(self.node_ids) != len(self.coordinates):
            raise ValueError(
                f"Feature {self.id}: {len(self.coordinates)} coordinates for {len(self.node_ids)} point ids"
            )

    @property
    def segment_count(self) -> int:
        return max(0, len(self.coordinates) - 1)
