"""Minimal OSM PBF writer for tests.

Encodes just enough of fileformat.proto / osmformat.proto to produce small
valid extracts, plus hooks for deliberately broken ones (raw deltas, foreign
compressions, truncated files).

Example:
    block = PrimitiveBlockBuilder()
    block.add_dense_nodes([(1, 46.0, 10.0), (2, 46.001, 10.0)])
    block.add_way(100, [1, 2], {"highway": "track"})
    data = build_pbf([block.build()])
"""

import lzma
import struct
import zlib
from typing import Iterable, Optional, Sequence

WIRE_VARINT = 0
WIRE_LENGTH_DELIMITED = 2

DEFAULT_GRANULARITY = 100


# =============================================================================
# PROTOBUF PRIMITIVES
# =============================================================================


def varint(value: int) -> bytes:
    """Encode an int as a base-128 varint; negatives as 64-bit two's complement."""
    if value < 0:
        value += 1 << 64
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def zigzag(value: int) -> int:
    return (value << 1) ^ (value >> 63)


def key(number: int, wire_type: int) -> bytes:
    return varint((number << 3) | wire_type)


def field_varint(number: int, value: int) -> bytes:
    return key(number, WIRE_VARINT) + varint(value)


def field_sint(number: int, value: int) -> bytes:
    return field_varint(number, zigzag(value))


def field_bytes(number: int, value: bytes) -> bytes:
    return key(number, WIRE_LENGTH_DELIMITED) + varint(len(value)) + value


def field_string(number: int, value: str) -> bytes:
    return field_bytes(number, value.encode("utf-8"))


def field_packed(number: int, values: Iterable[int], signed: bool = False) -> bytes:
    payload = b"".join(varint(zigzag(v) if signed else v) for v in values)
    return field_bytes(number, payload)


def deltas(values: Sequence[int]) -> list[int]:
    previous = 0
    out = []
    for value in values:
        out.append(value - previous)
        previous = value
    return out


def to_raw(degrees: float, granularity: int = DEFAULT_GRANULARITY) -> int:
    """Degrees to granularity units (offset 0)."""
    return round(degrees * 1e9 / granularity)


# =============================================================================
# BLOCKS
# =============================================================================


def header_block(
    required_features: Sequence[str] = ("OsmSchema-V0.6", "DenseNodes"),
    writing_program: Optional[str] = "pbf_builder",
    bbox: Optional[tuple[float, float, float, float]] = None,
) -> bytes:
    """HeaderBlock message; bbox as (left, bottom, right, top) degrees."""
    out = b""
    if bbox is not None:
        left, bottom, right, top = (round(v * 1e9) for v in bbox)
        out += field_bytes(
            1, field_sint(1, left) + field_sint(2, right) + field_sint(3, top) + field_sint(4, bottom)
        )
    for feature in required_features:
        out += field_string(4, feature)
    if writing_program is not None:
        out += field_string(16, writing_program)
    return out


class PrimitiveBlockBuilder:
    """Accumulates primitive groups and a shared string table."""

    def __init__(self, granularity: int = DEFAULT_GRANULARITY) -> None:
        self.granularity = granularity
        self.strings: list[str] = [""]
        self.groups: list[bytes] = []

    def _string_id(self, value: str) -> int:
        if value not in self.strings:
            self.strings.append(value)
        return self.strings.index(value)

    def add_dense_nodes(self, nodes: Sequence[tuple[int, float, float]]) -> "PrimitiveBlockBuilder":
        """One DenseNodes group from (id, lat, lon) tuples."""
        ids = [n[0] for n in nodes]
        lats = [to_raw(n[1], self.granularity) for n in nodes]
        lons = [to_raw(n[2], self.granularity) for n in nodes]
        return self.add_raw_dense(deltas(ids), deltas(lats), deltas(lons))

    def add_raw_dense(
        self, id_deltas: Sequence[int], lat_deltas: Sequence[int], lon_deltas: Sequence[int]
    ) -> "PrimitiveBlockBuilder":
        """DenseNodes group from already delta-encoded values (for corrupt data)."""
        dense = (
            field_packed(1, id_deltas, signed=True)
            + field_packed(8, lat_deltas, signed=True)
            + field_packed(9, lon_deltas, signed=True)
        )
        self.groups.append(field_bytes(2, dense))
        return self

    def add_plain_nodes(self, nodes: Sequence[tuple[int, float, float]]) -> "PrimitiveBlockBuilder":
        """Non-dense Node messages in one group."""
        group = b""
        for node_id, lat, lon in nodes:
            node = (
                field_sint(1, node_id)
                + field_sint(8, to_raw(lat, self.granularity))
                + field_sint(9, to_raw(lon, self.granularity))
            )
            group += field_bytes(1, node)
        self.groups.append(group)
        return self

    def add_way(
        self, way_id: int, refs: Sequence[int], tags: Optional[dict[str, str]] = None
    ) -> "PrimitiveBlockBuilder":
        """One Way in its own group."""
        tags = tags or {}
        keys = [self._string_id(k) for k in tags]
        vals = [self._string_id(v) for v in tags.values()]
        way = field_varint(1, way_id)
        if tags:
            way += field_packed(2, keys) + field_packed(3, vals)
        way += field_packed(8, deltas(refs), signed=True)
        self.groups.append(field_bytes(3, way))
        return self

    def add_relation(self, relation_id: int) -> "PrimitiveBlockBuilder":
        self.groups.append(field_bytes(4, field_varint(1, relation_id)))
        return self

    def add_raw_group(self, group: bytes) -> "PrimitiveBlockBuilder":
        self.groups.append(group)
        return self

    def build(self) -> bytes:
        table = b"".join(field_string(1, s) for s in self.strings)
        out = field_bytes(1, table)
        for group in self.groups:
            out += field_bytes(2, group)
        if self.granularity != DEFAULT_GRANULARITY:
            out += field_varint(17, self.granularity)
        return out


# =============================================================================
# FRAMING
# =============================================================================


def blob(data: bytes, compression: str = "zlib") -> bytes:
    """Blob message; compression is 'raw', 'zlib', 'lzma' or 'zstd' (unsupported by the reader)."""
    if compression == "raw":
        return field_bytes(1, data)
    if compression == "zlib":
        return field_varint(2, len(data)) + field_bytes(3, zlib.compress(data))
    if compression == "lzma":
        return field_varint(2, len(data)) + field_bytes(4, lzma.compress(data))
    if compression == "zstd":
        return field_varint(2, len(data)) + field_bytes(7, data)
    raise ValueError(f"unknown compression {compression}")


def frame(blob_type: str, blob_bytes: bytes) -> bytes:
    """[length prefix][BlobHeader][Blob]."""
    header = field_string(1, blob_type) + field_varint(3, len(blob_bytes))
    return struct.pack(">I", len(header)) + header + blob_bytes


def build_pbf(
    data_blocks: Sequence[bytes],
    compression: str = "zlib",
    header: Optional[bytes] = None,
) -> bytes:
    """Complete file: OSMHeader followed by one OSMData frame per block."""
    out = frame("OSMHeader", blob(header if header is not None else header_block(), compression))
    for data in data_blocks:
        out += frame("OSMData", blob(data, compression))
    return out


def simple_extract(
    nodes: Sequence[tuple[int, float, float]],
    ways: Sequence[tuple[int, Sequence[int], dict[str, str]]],
    compression: str = "zlib",
) -> bytes:
    """Typical layout: one block of dense nodes, then one block of ways."""
    points = PrimitiveBlockBuilder().add_dense_nodes(nodes)
    features = PrimitiveBlockBuilder()
    for way_id, refs, tags in ways:
        features.add_way(way_id, refs, tags)
    return build_pbf([points.build(), features.build()], compression=compression)
