"""End-to-end slope pipeline.

Phases:
1. Parse the tag filter (fails fast on a malformed expression)
2. Load the elevation raster (all-or-nothing)
3. Stream the extract once on the calling thread: every block's points go
   into the PointIndexBuilder, ways accepted by the filter are kept in
   block order
4. Seal the point index (read-only from here on)
5. Resolve + slope every kept way on a thread pool; per-way failures become
   diagnostics
6. Sort results by way id for reproducible output

Fatal errors (ExtractDecodeError, RasterLoadError, UnsupportedRasterError,
FilterParseError) propagate to the caller immediately.
"""

import logging
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, NamedTuple, Optional, Sequence, Union

from wayslope.constants import LogConfig, PipelineConfig, RasterConfig, SamplingMethod
from wayslope.core.errors import RecoverableError
from wayslope.core.feature_resolver import FeatureResolver
from wayslope.core.pbf_reader import PbfReader
from wayslope.core.point_index import PointIndex, PointIndexBuilder
from wayslope.core.raster_sampler import RasterSampler
from wayslope.core.slope_engine import ElevationSource, SlopeEngine
from wayslope.core.tag_filter import TagFilter
from wayslope.model.feature import RawFeature
from wayslope.model.slope_result import FeatureSlopeResult

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Everything one run produced.

    Attributes:
        results: Slope profiles sorted by way id
        diagnostics: Recoverable errors (duplicate points first, then per-way drops by way id)
        blocks_read: OSMData blocks decoded
        points_read: Points inserted into the index, duplicates included
        features_read: Ways decoded
        features_matched: Ways accepted by the tag filter
        forward_references: Way-to-point references into later blocks
    """

    results: list[FeatureSlopeResult] = field(default_factory=list)
    diagnostics: list[RecoverableError] = field(default_factory=list)
    blocks_read: int = 0
    points_read: int = 0
    features_read: int = 0
    features_matched: int = 0
    forward_references: int = 0

    @property
    def features_dropped(self) -> int:
        return self.features_matched - len(self.results)

    def diagnostic_counts(self) -> dict[str, int]:
        return dict(Counter(d.code for d in self.diagnostics))

    def summary(self) -> dict[str, Any]:
        """JSON-ready run statistics."""
        return {
            "blocks_read": self.blocks_read,
            "points_read": self.points_read,
            "features_read": self.features_read,
            "features_matched": self.features_matched,
            "features_emitted": len(self.results),
            "features_dropped": self.features_dropped,
            "forward_references": self.forward_references,
            "diagnostics": self.diagnostic_counts(),
        }


class _Outcome(NamedTuple):
    result: Optional[FeatureSlopeResult]
    diagnostic: Optional[RecoverableError]
    forward_references: int


def _process_chunk(
    chunk: Sequence[RawFeature],
    resolver: FeatureResolver,
    index: PointIndex,
    engine: SlopeEngine,
) -> list[_Outcome]:
    outcomes = []
    for raw in chunk:
        try:
            feature = resolver.resolve(raw, index=index)
        except RecoverableError as exc:
            outcomes.append(_Outcome(result=None, diagnostic=exc, forward_references=0))
            continue
        outcomes.append(
            _Outcome(result=engine.compute(feature), diagnostic=None, forward_references=feature.forward_references)
        )
    return outcomes


def _diagnostic_sort_key(diagnostic: RecoverableError) -> tuple[int, int]:
    return (diagnostic.context.get("feature_id", 0), diagnostic.context.get("point_id", 0))


def process_extract(
    stream: BinaryIO,
    sampler: ElevationSource,
    tag_filter: TagFilter,
    source: str = "<stream>",
    workers: Optional[int] = None,
) -> RunReport:
    """Run phases 3 to 6 on an already opened extract.

    Args:
        stream: Binary OSM PBF stream positioned at the start of the file
        sampler: Elevation source (RasterSampler in production)
        tag_filter: Parsed way filter
        source: Name used in error messages
        workers: Thread count for the per-way stage (1 runs inline)

    Returns:
        RunReport with results sorted by way id.

    Raises:
        ExtractDecodeError: If any block of the extract is malformed.
    """
    workers = workers or PipelineConfig.DEFAULT_WORKERS
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    report = RunReport()
    resolver = FeatureResolver(tag_filter=tag_filter)
    builder = PointIndexBuilder()
    pending: list[RawFeature] = []

    start_time = time.time()
    reader = PbfReader(stream, source=source)
    for block in reader.iter_blocks():
        report.blocks_read += 1
        builder.insert_many(block.node_ids, block.lats, block.lons, block_index=block.index)
        report.features_read += len(block.features)
        pending.extend(raw for raw in block.features if resolver.accepts(raw))

    report.points_read = len(builder)
    report.features_matched = len(pending)
    index = builder.seal()
    report.diagnostics.extend(index.diagnostics)
    logger.info(
        f"Streamed {source} in {time.time() - start_time:.2f}s: "
        f"{report.features_matched}/{report.features_read} ways match filter {tag_filter}"
    )

    start_time = time.time()
    engine = SlopeEngine(sampler=sampler)
    chunk_size = PipelineConfig.CHUNK_SIZE
    chunks = [pending[i : i + chunk_size] for i in range(0, len(pending), chunk_size)]
    del pending

    if workers == 1 or len(chunks) <= 1:
        chunk_outcomes = [_process_chunk(chunk, resolver, index, engine) for chunk in chunks]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="wayslope") as executor:
            chunk_outcomes = list(
                executor.map(lambda chunk: _process_chunk(chunk, resolver, index, engine), chunks)
            )

    feature_diagnostics: list[RecoverableError] = []
    for outcomes in chunk_outcomes:
        for outcome in outcomes:
            if outcome.result is not None:
                report.results.append(outcome.result)
                report.forward_references += outcome.forward_references
            elif outcome.diagnostic is not None:
                feature_diagnostics.append(outcome.diagnostic)

    report.results.sort(key=lambda r: r.feature_id)
    feature_diagnostics.sort(key=_diagnostic_sort_key)
    report.diagnostics.extend(feature_diagnostics)

    for diagnostic in feature_diagnostics[: LogConfig.MAX_LOGGED_DIAGNOSTICS]:
        logger.warning(diagnostic.message)
    if len(feature_diagnostics) > LogConfig.MAX_LOGGED_DIAGNOSTICS:
        logger.warning(f"... {len(feature_diagnostics) - LogConfig.MAX_LOGGED_DIAGNOSTICS} more dropped ways")
    if report.forward_references:
        logger.info(f"{report.forward_references} way references point into later blocks")

    logger.info(
        f"Computed slopes for {len(report.results)} ways in {time.time() - start_time:.2f}s "
        f"with {workers} worker(s); {report.features_dropped} dropped"
    )
    return report


def run(
    extract_path: Union[str, Path],
    raster_path: Union[str, Path],
    filter_expression: Optional[str] = None,
    workers: Optional[int] = None,
    sampling: SamplingMethod = RasterConfig.DEFAULT_SAMPLING,
) -> RunReport:
    """Run the full pipeline on files.

    Args:
        extract_path: OSM PBF extract
        raster_path: Single-band elevation raster in geographic coordinates
        filter_expression: Tag filter, None for all ways
        workers: Thread count for the per-way stage
        sampling: Raster sampling method used for every vertex

    Returns:
        RunReport with results sorted by way id.

    Raises:
        FilterParseError, RasterLoadError, UnsupportedRasterError,
        ExtractDecodeError: Fatal errors; nothing is returned.
    """
    tag_filter = TagFilter.parse(filter_expression)
    sampler = RasterSampler.from_path(raster_path, method=sampling)
    with open(extract_path, "rb") as stream:
        return process_extract(
            stream=stream,
            sampler=sampler,
            tag_filter=tag_filter,
            source=str(extract_path),
            workers=workers,
        )
