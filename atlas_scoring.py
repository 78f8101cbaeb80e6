"""Scoring and similarity engine for atlas records.

Feature statistics are computed once over the union of tract and twin records
and carried, together with the benchmark profiles and their standardized
vectors, in an immutable ``ScoringContext``. Every function here is pure:
records are never mutated and missing or non-numeric feature values degrade
to zero (or are left out of the statistics) instead of raising.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from atlas_records import AtlasRecord, Benchmark, coerce_value
from scoring_config import (
    COMPOSITE,
    DEFAULT_ZONE_THRESHOLDS,
    FEATURE_FALLBACKS,
    MIN_ZONES_FOR_PERCENTILES,
    SCORE_FALLBACK_ORDER,
    SIM_FEATURES,
    ZONE_THRESHOLD_PERCENTILES,
    ZONE_TIER_LABELS,
    ZSCORE_FEATURES,
)

logger = logging.getLogger(__name__)

Vector = Tuple[float, ...]
Profile = Dict[str, float]


@dataclass(frozen=True)
class FeatureStat:
    mean: float = 0.0
    std: float = 1.0


DEGENERATE_STAT = FeatureStat()


@dataclass(frozen=True)
class ZScore:
    label: str
    key: str
    value: float


@dataclass(frozen=True)
class ZoneThresholds:
    high: float
    mid: float

    def classify(self, score: float) -> str:
        if score >= self.high:
            return ZONE_TIER_LABELS[0]
        if score >= self.mid:
            return ZONE_TIER_LABELS[1]
        return ZONE_TIER_LABELS[2]


DEFAULT_THRESHOLDS = ZoneThresholds(*DEFAULT_ZONE_THRESHOLDS)


@dataclass(frozen=True)
class ScoringContext:
    statistics: Mapping[str, FeatureStat] = field(default_factory=dict)
    profiles: Mapping[str, Profile] = field(default_factory=dict)
    vectors: Mapping[str, Vector] = field(default_factory=dict)
    benchmarks: Tuple[Benchmark, ...] = ()

    def stat(self, key: str) -> FeatureStat:
        return self.statistics.get(key, DEGENERATE_STAT)

    def benchmark_names(self) -> List[str]:
        return [benchmark.name for benchmark in self.benchmarks]


def _round_half_up(value: float, digits: int) -> float:
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def resolve_feature(source: object, key: str) -> Optional[float]:
    """Read ``key`` from a record or profile, walking its fallback keys in order."""
    for candidate in FEATURE_FALLBACKS.get(key, (key,)):
        value = coerce_value(source.get(candidate))
        if value is not None:
            return value
    return None


def compute_statistics(
    records: Iterable[object],
    feature_keys: Sequence[str] = SIM_FEATURES,
) -> Dict[str, FeatureStat]:
    population = list(records)
    statistics: Dict[str, FeatureStat] = {}
    for key in feature_keys:
        values = pd.Series(
            [coerce_value(record.get(key)) for record in population],
            dtype="float64",
        ).dropna()
        if values.empty:
            statistics[key] = FeatureStat()
            continue

        mean = float(values.mean())
        std = float(values.std(ddof=0))
        # Constant floats leave rounding noise in the std; treat them as zero variance.
        if (
            values.nunique() == 1
            or not math.isfinite(std)
            or math.isclose(std, 0.0, abs_tol=1e-12 * max(1.0, abs(mean)))
        ):
            std = 1.0
        statistics[key] = FeatureStat(mean=mean, std=std)
    return statistics


def build_vector(record: object, statistics: Mapping[str, FeatureStat]) -> Vector:
    components: List[float] = []
    for key in SIM_FEATURES:
        value = resolve_feature(record, key)
        if value is None:
            components.append(0.0)
            continue

        stat = statistics.get(key, DEGENERATE_STAT)
        standardized = (value - stat.mean) / (stat.std or 1.0)
        components.append(standardized if math.isfinite(standardized) else 0.0)
    return tuple(components)


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    dot = 0.0
    magnitude_a = 0.0
    magnitude_b = 0.0
    for a, b in zip(vector_a, vector_b):
        dot += a * b
        magnitude_a += a * a
        magnitude_b += b * b

    magnitude_a = math.sqrt(magnitude_a)
    magnitude_b = math.sqrt(magnitude_b)
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


def score_from_similarity(similarity: float) -> float:
    if not math.isfinite(similarity):
        return 0.0
    clamped = max(0.0, min(100.0, similarity * 100))
    return _round_half_up(clamped, 1)


def build_profiles(
    records: Iterable[object],
    benchmarks: Iterable[Benchmark],
) -> Dict[str, Profile]:
    """Build one representative feature profile per benchmark.

    A benchmark's own attribute wins; otherwise the feature is averaged over
    the records whose ``matched_property`` names the benchmark, and defaults
    to 0 when none of them carries it.
    """
    population = list(records)
    profiles: Dict[str, Profile] = {}
    for benchmark in benchmarks:
        matched = [
            record for record in population if record.get("matched_property") == benchmark.name
        ]
        profile: Profile = {}
        for key in SIM_FEATURES:
            own = benchmark.value(key)
            if own is not None:
                profile[key] = own
                continue

            values = [
                value
                for value in (coerce_value(record.get(key)) for record in matched)
                if value is not None
            ]
            profile[key] = sum(values) / len(values) if values else 0.0
        profiles[benchmark.name] = profile
    return profiles


def build_vectors(
    profiles: Mapping[str, Mapping[str, float]],
    statistics: Mapping[str, FeatureStat],
) -> Dict[str, Vector]:
    return {name: build_vector(profile, statistics) for name, profile in profiles.items()}


def build_context(
    tracts: Sequence[AtlasRecord],
    twins: Sequence[AtlasRecord],
    benchmarks: Sequence[Benchmark],
) -> ScoringContext:
    statistics = compute_statistics([*tracts, *twins])
    profiles = build_profiles(twins, benchmarks)
    vectors = build_vectors(profiles, statistics)
    logger.debug(
        "Built scoring context from %d tracts, %d twins and %d benchmarks",
        len(tracts),
        len(twins),
        len(profiles),
    )
    return ScoringContext(
        statistics=statistics,
        profiles=profiles,
        vectors=vectors,
        benchmarks=tuple(benchmarks),
    )


def reindex(
    records: Sequence[AtlasRecord],
    benchmark: str,
    context: ScoringContext,
) -> Sequence[AtlasRecord]:
    """Re-score ``records`` against ``benchmark`` and sort them best first.

    The composite selection, or a benchmark without a vector, hands back the
    input untouched.
    """
    benchmark_vector = context.vectors.get(benchmark) if benchmark != COMPOSITE else None
    if benchmark_vector is None:
        return records

    indexed = [
        record.with_indexed_score(
            score_from_similarity(
                cosine_similarity(build_vector(record, context.statistics), benchmark_vector)
            )
        )
        for record in records
    ]
    indexed.sort(key=lambda record: record.indexed_score, reverse=True)
    return indexed


def display_score(record: AtlasRecord, benchmark: str = COMPOSITE) -> float:
    if benchmark != COMPOSITE and record.indexed_score is not None:
        return record.indexed_score
    for key in SCORE_FALLBACK_ORDER:
        score = record.value(key)
        if score is not None:
            return score
    return 0.0


def z_scores(record: object, benchmark: str, context: ScoringContext) -> List[ZScore]:
    profile = context.profiles.get(benchmark) if benchmark != COMPOSITE else None
    if profile is None:
        return []

    deviations: List[ZScore] = []
    for key, label, _ in ZSCORE_FEATURES:
        record_value = coerce_value(record.get(key)) or 0.0
        benchmark_value = coerce_value(profile.get(key)) or 0.0
        deviation = (record_value - benchmark_value) / (context.stat(key).std or 1.0)
        deviations.append(ZScore(label=label, key=key, value=_round_half_up(deviation, 2)))
    return deviations


def compute_thresholds(
    zones: Iterable[AtlasRecord],
    benchmark: str = COMPOSITE,
) -> ZoneThresholds:
    scores = sorted(display_score(zone, benchmark) for zone in zones)
    if len(scores) < MIN_ZONES_FOR_PERCENTILES:
        return DEFAULT_THRESHOLDS

    high_percentile, mid_percentile = ZONE_THRESHOLD_PERCENTILES
    return ZoneThresholds(
        high=scores[int(len(scores) * high_percentile)],
        mid=scores[int(len(scores) * mid_percentile)],
    )
