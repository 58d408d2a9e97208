"""OSM PBF extract reader.

Decodes the block-structured OpenStreetMap PBF format into raw point records
and raw way records:
- File layout: repeated [4-byte big-endian length][BlobHeader][Blob]
- Blobs are raw, zlib or lzma compressed and decoded one at a time
- DenseNodes and Way refs are delta encoded; decoding is vectorized with NumPy
- Every block is decoded completely before it is handed out, so a failure
  aborts the run with the offending block's position instead of leaving
  half a block in the point index

Only the protobuf wire format subset used by fileformat.proto and
osmformat.proto is implemented. Relations and changesets are skipped.

Format reference: https://wiki.openstreetmap.org/wiki/PBF_Format
"""

import logging
import lzma
import struct
import time
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, Optional

import numpy as np

from wayslope.constants import ExtractConfig
from wayslope.core.errors import ExtractDecodeError
from wayslope.model.coordinate import Coordinate
from wayslope.model.feature import RawFeature

logger = logging.getLogger(__name__)

# Protobuf wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

_FIXED_WIDTHS = {WIRE_FIXED64: 8, WIRE_FIXED32: 4}

# Blob compressions we recognize but cannot decode
_UNSUPPORTED_COMPRESSION = {5: "bzip2", 6: "lz4", 7: "zstd"}


class MalformedBlockError(ValueError):
    """Decoding failure inside a single block.

    Raised by the wire-level helpers and wrapped into ExtractDecodeError by
    the reader, which knows the block index and file offset.
    """


# =============================================================================
# WIRE FORMAT
# =============================================================================


def _read_varint(buf: memoryview, pos: int) -> tuple[int, int]:
    """Read one base-128 varint starting at pos; returns (value, new_pos)."""
    result = 0
    shift = 0
    for _ in range(ExtractConfig.MAX_VARINT_BYTES):
        if pos >= len(buf):
            raise MalformedBlockError("truncated varint")
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if byte < 0x80:
            if result >= 1 << 64:
                raise MalformedBlockError("varint exceeds 64 bits")
            return result, pos
        shift += 7
    raise MalformedBlockError("varint longer than 10 bytes")


def _iter_fields(buf: memoryview) -> Iterator[tuple[int, int, object]]:
    """Yield (field_number, wire_type, value) for each field of a message.

    Varints are returned as unsigned Python ints, length-delimited fields as
    zero-copy memoryview slices.
    """
    pos = 0
    end = len(buf)
    while pos < end:
        key, pos = _read_varint(buf, pos)
        number, wire_type = key >> 3, key & 0x07
        if number == 0:
            raise MalformedBlockError("field number 0")
        if wire_type == WIRE_VARINT:
            value, pos = _read_varint(buf, pos)
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = _read_varint(buf, pos)
            if pos + length > end:
                raise MalformedBlockError(f"field {number} runs {pos + length - end} bytes past its message")
            value = buf[pos : pos + length]
            pos += length
        elif wire_type in _FIXED_WIDTHS:
            width = _FIXED_WIDTHS[wire_type]
            if pos + width > end:
                raise MalformedBlockError(f"truncated fixed-width field {number}")
            value = buf[pos : pos + width]
            pos += width
        else:
            raise MalformedBlockError(f"unsupported wire type {wire_type} for field {number}")
        yield number, wire_type, value


def _expect(wire_type: int, expected: int, name: str) -> None:
    if wire_type != expected:
        raise MalformedBlockError(f"{name} has wire type {wire_type}, expected {expected}")


def _as_int64(value: int) -> int:
    """Reinterpret an unsigned varint as two's complement int64."""
    return value - (1 << 64) if value >= (1 << 63) else value


def _zigzag(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def _unpack_varints(buf: memoryview) -> np.ndarray:
    """Decode a packed repeated varint field into a uint64 array.

    Each varint ends at the first byte below 0x80; the 7-bit groups of every
    varint are shifted into place and summed with a segmented reduction.
    """
    data = np.frombuffer(buf, dtype=np.uint8)
    if data.size == 0:
        return np.empty(0, dtype=np.uint64)

    ends = np.flatnonzero(data < 0x80)
    if ends.size == 0 or ends[-1] != data.size - 1:
        raise MalformedBlockError("truncated packed varint")

    starts = np.empty_like(ends)
    starts[0] = 0
    starts[1:] = ends[:-1] + 1
    lengths = ends - starts + 1
    if lengths.max() > ExtractConfig.MAX_VARINT_BYTES:
        raise MalformedBlockError("packed varint longer than 10 bytes")
    if np.any(data[ends[lengths == ExtractConfig.MAX_VARINT_BYTES]] > 0x01):
        raise MalformedBlockError("packed varint exceeds 64 bits")

    shifts = ((np.arange(data.size) - np.repeat(starts, lengths)) * 7).astype(np.uint64)
    parts = (data & 0x7F).astype(np.uint64) << shifts
    return np.add.reduceat(parts, starts)


def _zigzag_decode(values: np.ndarray) -> np.ndarray:
    """Vectorized sint64 zigzag decoding of a uint64 array."""
    return (values >> np.uint64(1)).astype(np.int64) ^ -(values & np.uint64(1)).astype(np.int64)


def _delta_decode(deltas: np.ndarray, what: str) -> np.ndarray:
    """Running sum of delta-encoded int64 values.

    The int64 cumulative sum wraps silently on overflow, so the sum is
    checked in float64 first.
    """
    if deltas.size == 0:
        return deltas.astype(np.int64)
    magnitude = np.abs(np.cumsum(deltas, dtype=np.float64)).max()
    if magnitude >= ExtractConfig.DELTA_OVERFLOW_LIMIT:
        raise MalformedBlockError(f"{what} delta sum overflows int64")
    return np.cumsum(deltas, dtype=np.int64)


def _packed_field(chunks: dict[int, list[np.ndarray]], number: int, wire_type: int, value: memoryview) -> None:
    """Collect a packed repeated field; repeated occurrences are concatenated."""
    _expect(wire_type, WIRE_LENGTH_DELIMITED, f"packed field {number}")
    chunks.setdefault(number, []).append(_unpack_varints(value))


def _joined(chunks: dict[int, list[np.ndarray]], number: int) -> np.ndarray:
    parts = chunks.get(number)
    if not parts:
        return np.empty(0, dtype=np.uint64)
    return parts[0] if len(parts) == 1 else np.concatenate(parts)


# =============================================================================
# BLOCK DECODING
# =============================================================================


@dataclass(frozen=True)
class HeaderInfo:
    """Contents of the OSMHeader block.

    Attributes:
        required_features: Capabilities a reader must support
        optional_features: Capabilities a reader may use
        writing_program: Program that wrote the file
        bbox: (left, bottom, right, top) in degrees, if present
    """

    required_features: tuple[str, ...] = ()
    optional_features: tuple[str, ...] = ()
    writing_program: Optional[str] = None
    bbox: Optional[tuple[float, float, float, float]] = None


@dataclass
class DecodedBlock:
    """One fully decoded OSMData block.

    Attributes:
        index: Ordinal of the blob in the file (the OSMHeader is block 0)
        offset: Byte offset of the blob's length prefix
        node_ids: Point ids in block order
        lats: Point latitudes in degrees, aligned with node_ids
        lons: Point longitudes in degrees, aligned with node_ids
        features: Ways in block order
        skipped_relations: Relations present but not decoded
    """

    index: int
    offset: int
    node_ids: np.ndarray
    lats: np.ndarray
    lons: np.ndarray
    features: list[RawFeature] = field(default_factory=list)
    skipped_relations: int = 0

    @property
    def point_count(self) -> int:
        return int(self.node_ids.size)

    @property
    def kind(self) -> str:
        """"points", "features", "mixed" or "empty"."""
        if self.point_count and self.features:
            return "mixed"
        if self.point_count:
            return "points"
        if self.features:
            return "features"
        return "empty"


def _decompress_blob(blob: bytes) -> bytes:
    raw = zlib_data = lzma_data = None
    raw_size: Optional[int] = None

    for number, wire_type, value in _iter_fields(memoryview(blob)):
        if number == 1:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "Blob.raw")
            raw = bytes(value)
        elif number == 2:
            _expect(wire_type, WIRE_VARINT, "Blob.raw_size")
            raw_size = value
        elif number == 3:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "Blob.zlib_data")
            zlib_data = bytes(value)
        elif number == 4:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "Blob.lzma_data")
            lzma_data = bytes(value)
        elif number in _UNSUPPORTED_COMPRESSION:
            raise MalformedBlockError(f"unsupported blob compression {_UNSUPPORTED_COMPRESSION[number]}")

    limit = ExtractConfig.MAX_BLOB_BYTES
    if raw is not None:
        data = raw
    elif zlib_data is not None:
        decompressor = zlib.decompressobj()
        data = decompressor.decompress(zlib_data, limit + 1)
        if not decompressor.eof:
            raise MalformedBlockError("zlib stream is truncated or inflates past the blob size limit")
    elif lzma_data is not None:
        decompressor = lzma.LZMADecompressor()
        data = decompressor.decompress(lzma_data, max_length=limit + 1)
        if not decompressor.eof:
            raise MalformedBlockError("lzma stream is truncated or inflates past the blob size limit")
    else:
        raise MalformedBlockError("blob carries no data")

    if len(data) > limit:
        raise MalformedBlockError(f"blob inflates to {len(data)} bytes, limit is {limit}")
    if raw_size is not None and len(data) != raw_size:
        raise MalformedBlockError(f"blob inflated to {len(data)} bytes but declares raw_size {raw_size}")
    return data


def _parse_blob_header(header: bytes) -> tuple[str, int]:
    blob_type: Optional[str] = None
    datasize: Optional[int] = None
    for number, wire_type, value in _iter_fields(memoryview(header)):
        if number == 1:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "BlobHeader.type")
            blob_type = bytes(value).decode("utf-8")
        elif number == 3:
            _expect(wire_type, WIRE_VARINT, "BlobHeader.datasize")
            datasize = _as_int64(value)
    if blob_type is None or datasize is None:
        raise MalformedBlockError("BlobHeader lacks type or datasize")
    if not 0 <= datasize <= ExtractConfig.MAX_BLOB_BYTES:
        raise MalformedBlockError(f"blob datasize {datasize} outside [0, {ExtractConfig.MAX_BLOB_BYTES}]")
    return blob_type, datasize


def _decode_header_block(data: bytes) -> HeaderInfo:
    required: list[str] = []
    optional: list[str] = []
    writing_program: Optional[str] = None
    bbox: Optional[tuple[float, float, float, float]] = None

    for number, wire_type, value in _iter_fields(memoryview(data)):
        if number == 1:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "HeaderBlock.bbox")
            sides = {
                n: _zigzag(v) / ExtractConfig.NANODEGREES_PER_DEGREE
                for n, wt, v in _iter_fields(value)
                if wt == WIRE_VARINT
            }
            bbox = (sides.get(1, 0.0), sides.get(4, 0.0), sides.get(2, 0.0), sides.get(3, 0.0))
        elif number == 4:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "HeaderBlock.required_features")
            required.append(bytes(value).decode("utf-8"))
        elif number == 5:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "HeaderBlock.optional_features")
            optional.append(bytes(value).decode("utf-8"))
        elif number == 16:
            _expect(wire_type, WIRE_LENGTH_DELIMITED, "HeaderBlock.writingprogram")
            writing_program = bytes(value).decode("utf-8")

    unsupported = set(required) - ExtractConfig.SUPPORTED_REQUIRED_FEATURES
    if unsupported:
        raise MalformedBlockError(f"extract requires unsupported features: {', '.join(sorted(unsupported))}")

    return HeaderInfo(
        required_features=tuple(required),
        optional_features=tuple(optional),
        writing_program=writing_program,
        bbox=bbox,
    )


class _PrimitiveBlockDecoder:
    """Decodes one PrimitiveBlock into point arrays and RawFeatures."""

    def __init__(self, data: bytes, block_index: int) -> None:
        self.block_index = block_index
        self.strings: list[str] = []
        self.granularity = ExtractConfig.DEFAULT_GRANULARITY
        self.lat_offset = ExtractConfig.DEFAULT_LAT_OFFSET
        self.lon_offset = ExtractConfig.DEFAULT_LON_OFFSET
        self.groups: list[memoryview] = []

        for number, wire_type, value in _iter_fields(memoryview(data)):
            if number == 1:
                _expect(wire_type, WIRE_LENGTH_DELIMITED, "PrimitiveBlock.stringtable")
                self.strings = [
                    bytes(s).decode("utf-8") for n, wt, s in _iter_fields(value) if n == 1 and wt == WIRE_LENGTH_DELIMITED
                ]
            elif number == 2:
                _expect(wire_type, WIRE_LENGTH_DELIMITED, "PrimitiveBlock.primitivegroup")
                self.groups.append(value)
            elif number == 17:
                _expect(wire_type, WIRE_VARINT, "PrimitiveBlock.granularity")
                self.granularity = _as_int64(value)
            elif number == 19:
                _expect(wire_type, WIRE_VARINT, "PrimitiveBlock.lat_offset")
                self.lat_offset = _as_int64(value)
            elif number == 20:
                _expect(wire_type, WIRE_VARINT, "PrimitiveBlock.lon_offset")
                self.lon_offset = _as_int64(value)

        if self.granularity <= 0:
            raise MalformedBlockError(f"granularity {self.granularity} must be positive")

        # Raw (undecoded, pre-granularity) coordinate chunks
        self._id_chunks: list[np.ndarray] = []
        self._lat_chunks: list[np.ndarray] = []
        self._lon_chunks: list[np.ndarray] = []
        self.features: list[RawFeature] = []
        self.skipped_relations = 0

    def decode(self, offset: int) -> DecodedBlock:
        for group in self.groups:
            self._decode_group(group)

        node_ids = self._concat(self._id_chunks)
        lats = self._to_degrees(self._concat(self._lat_chunks), self.lat_offset, "latitude", ExtractConfig.LAT_RANGE)
        lons = self._to_degrees(self._concat(self._lon_chunks), self.lon_offset, "longitude", ExtractConfig.LON_RANGE)

        return DecodedBlock(
            index=self.block_index,
            offset=offset,
            node_ids=node_ids,
            lats=lats,
            lons=lons,
            features=self.features,
            skipped_relations=self.skipped_relations,
        )

    @staticmethod
    def _concat(chunks: list[np.ndarray]) -> np.ndarray:
        if not chunks:
            return np.empty(0, dtype=np.int64)
        return chunks[0] if len(chunks) == 1 else np.concatenate(chunks)

    def _to_degrees(
        self,
        raw: np.ndarray,
        offset: int,
        what: str,
        valid_range: tuple[float, float],
    ) -> np.ndarray:
        """Scale raw granularity units to degrees and reject drifted values.

        A broken delta chain shows up as coordinates outside the valid range.
        """
        degrees = (raw.astype(np.float64) * self.granularity + offset) / ExtractConfig.NANODEGREES_PER_DEGREE
        if degrees.size:
            low, high = valid_range
            bad = np.flatnonzero((degrees < low) | (degrees > high))
            if bad.size:
                raise MalformedBlockError(
                    f"decoded {what} {degrees[bad[0]]:.7f} outside [{low}, {high}] "
                    f"({bad.size} point(s)); coordinate deltas are corrupt"
                )
        return degrees

    def _decode_group(self, group: memoryview) -> None:
        for number, wire_type, value in _iter_fields(group):
            if number == 1:
                _expect(wire_type, WIRE_LENGTH_DELIMITED, "PrimitiveGroup.nodes")
                self._decode_node(value)
            elif number == 2:
                _expect(wire_type, WIRE_LENGTH_DELIMITED, "PrimitiveGroup.dense")
                self._decode_dense(value)
            elif number == 3:
                _expect(wire_type, WIRE_LENGTH_DELIMITED, "PrimitiveGroup.ways")
                self.features.append(self._decode_way(value))
            elif number == 4:
                self.skipped_relations += 1

    def _decode_node(self, buf: memoryview) -> None:
        node_id = lat = lon = None
        for number, wire_type, value in _iter_fields(buf):
            if number == 1:
                _expect(wire_type, WIRE_VARINT, "Node.id")
                node_id = _zigzag(value)
            elif number == 8:
                _expect(wire_type, WIRE_VARINT, "Node.lat")
                lat = _zigzag(value)
            elif number == 9:
                _expect(wire_type, WIRE_VARINT, "Node.lon")
                lon = _zigzag(value)
        if node_id is None or lat is None or lon is None:
            raise MalformedBlockError("Node lacks id, lat or lon")
        self._id_chunks.append(np.array([node_id], dtype=np.int64))
        self._lat_chunks.append(np.array([lat], dtype=np.int64))
        self._lon_chunks.append(np.array([lon], dtype=np.int64))

    def _decode_dense(self, buf: memoryview) -> None:
        chunks: dict[int, list[np.ndarray]] = {}
        for number, wire_type, value in _iter_fields(buf):
            if number in (1, 8, 9):
                _packed_field(chunks, number, wire_type, value)

        id_deltas = _zigzag_decode(_joined(chunks, 1))
        lat_deltas = _zigzag_decode(_joined(chunks, 8))
        lon_deltas = _zigzag_decode(_joined(chunks, 9))
        if not id_deltas.size == lat_deltas.size == lon_deltas.size:
            raise MalformedBlockError(
                f"DenseNodes arrays differ in length: "
                f"{id_deltas.size} ids, {lat_deltas.size} lats, {lon_deltas.size} lons"
            )

        self._id_chunks.append(_delta_decode(id_deltas, "DenseNodes id"))
        self._lat_chunks.append(_delta_decode(lat_deltas, "DenseNodes lat"))
        self._lon_chunks.append(_delta_decode(lon_deltas, "DenseNodes lon"))

    def _decode_way(self, buf: memoryview) -> RawFeature:
        way_id: Optional[int] = None
        chunks: dict[int, list[np.ndarray]] = {}
        for number, wire_type, value in _iter_fields(buf):
            if number == 1:
                _expect(wire_type, WIRE_VARINT, "Way.id")
                way_id = _as_int64(value)
            elif number in (2, 3, 8):
                _packed_field(chunks, number, wire_type, value)
        if way_id is None:
            raise MalformedBlockError("Way lacks id")

        keys = _joined(chunks, 2)
        vals = _joined(chunks, 3)
        if keys.size != vals.size:
            raise MalformedBlockError(f"way {way_id} has {keys.size} tag keys but {vals.size} values")
        if keys.size and max(int(keys.max()), int(vals.max())) >= len(self.strings):
            raise MalformedBlockError(f"way {way_id} tag index outside string table of {len(self.strings)}")
        tags = {self.strings[k]: self.strings[v] for k, v in zip(keys.tolist(), vals.tolist())}

        refs = _delta_decode(_zigzag_decode(_joined(chunks, 8)), f"way {way_id} refs")
        return RawFeature(
            id=way_id,
            node_ids=tuple(refs.tolist()),
            tags=tags,
            block_index=self.block_index,
        )


# =============================================================================
# READER
# =============================================================================


class PbfReader:
    """Forward-only reader over an OSM PBF byte stream.

    Blocks are decoded strictly in file order. Point blocks and way blocks may
    be interleaved in any order; callers that need coordinates for ways must
    collect both and resolve after the pass (see pipeline.run).

    Each iterator continues from the current stream position, so the reader
    supports one pass in total.

    Example:
        with open("monaco.osm.pbf", "rb") as fh:
            reader = PbfReader(fh, source="monaco.osm.pbf")
            for block in reader.iter_blocks():
                print(block.index, block.kind, block.point_count)
    """

    def __init__(self, stream: BinaryIO, source: str = "<stream>") -> None:
        self._stream = stream
        self.source = source
        self.header: Optional[HeaderInfo] = None
        self._offset = 0
        self._block_index = 0

    def _read_exact(self, size: int, what: str) -> bytes:
        data = self._stream.read(size)
        if len(data) != size:
            raise MalformedBlockError(f"truncated {what}: expected {size} bytes, got {len(data)}")
        self._offset += size
        return data

    def _read_blob(self) -> Optional[tuple[str, bytes]]:
        """Read one framed blob; returns None at a clean end of file."""
        prefix = self._stream.read(ExtractConfig.HEADER_LENGTH_PREFIX_BYTES)
        if not prefix:
            return None
        if len(prefix) != ExtractConfig.HEADER_LENGTH_PREFIX_BYTES:
            raise MalformedBlockError("truncated BlobHeader length prefix")
        self._offset += len(prefix)

        (header_size,) = struct.unpack(">I", prefix)
        if header_size > ExtractConfig.MAX_BLOB_HEADER_BYTES:
            raise MalformedBlockError(
                f"BlobHeader of {header_size} bytes exceeds {ExtractConfig.MAX_BLOB_HEADER_BYTES}"
            )
        blob_type, datasize = _parse_blob_header(self._read_exact(header_size, "BlobHeader"))
        return blob_type, _decompress_blob(self._read_exact(datasize, "Blob"))

    def iter_blocks(self) -> Iterator[DecodedBlock]:
        """Yield every OSMData block in file order.

        Raises:
            ExtractDecodeError: If any block fails to decode. No part of the
                failing block is yielded.
        """
        start_time = time.time()
        blocks = points = ways = 0

        while True:
            block_offset = self._offset
            block_index = self._block_index
            try:
                framed = self._read_blob()
                if framed is None:
                    break
                blob_type, data = framed
                block = self._decode(blob_type, data, block_index, block_offset)
            except (MalformedBlockError, UnicodeDecodeError, zlib.error, lzma.LZMAError) as exc:
                raise ExtractDecodeError(
                    str(exc),
                    source=self.source,
                    block_index=block_index,
                    offset=block_offset,
                ) from exc
            finally:
                self._block_index += 1

            if block is None:
                continue
            blocks += 1
            points += block.point_count
            ways += len(block.features)
            logger.debug(
                f"Block {block.index} @ {block.offset}: {block.kind}, "
                f"{block.point_count} points, {len(block.features)} ways"
            )
            yield block

        elapsed = time.time() - start_time
        logger.info(f"Decoded {blocks} data blocks from {self.source} in {elapsed:.2f}s ({points} points, {ways} ways)")

    def _decode(self, blob_type: str, data: bytes, block_index: int, offset: int) -> Optional[DecodedBlock]:
        if blob_type == ExtractConfig.HEADER_BLOCK_TYPE:
            self.header = _decode_header_block(data)
            logger.debug(f"{self.source}: header {self.header}")
            return None
        if blob_type == ExtractConfig.DATA_BLOCK_TYPE:
            if self.header is None:
                raise MalformedBlockError("OSMData block before OSMHeader")
            return _PrimitiveBlockDecoder(data, block_index).decode(offset)
        logger.warning(f"{self.source}: skipping unknown blob type {blob_type!r} at block {block_index}")
        return None

    def iter_points(self) -> Iterator[tuple[int, Coordinate]]:
        """Yield (point id, coordinate) for every point in file order."""
        for block in self.iter_blocks():
            for point_id, lat, lon in zip(block.node_ids.tolist(), block.lats.tolist(), block.lons.tolist()):
                yield point_id, Coordinate(lat=lat, lon=lon)

    def iter_features(self) -> Iterator[RawFeature]:
        """Yield every way in file order."""
        for block in self.iter_blocks():
            yield from block.features
