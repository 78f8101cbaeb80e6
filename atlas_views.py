"""Filtering, summaries and CSV export for the atlas views.

These helpers sit between the scoring engine and whatever renders the
results (the Streamlit dashboard or the command-line builder). Every score
they read goes through ``display_score`` so sorting, tiers and exports agree.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from atlas_records import AtlasRecord, Benchmark, TwinRecord, ZoneRecord
from atlas_scoring import ZScore, display_score
from scoring_config import (
    COMPOSITE,
    TRACT_TIER_CUTOFFS,
    TRACT_TIER_LABELS,
    ZSCORE_DISPLAY_LIMIT,
    ZSCORE_SEVERITY_CUTOFFS,
)

BASE_EXPORT_COLUMNS = [
    "name",
    "county",
    "state",
    "lat",
    "lng",
    "pct_hispanic",
    "med_hh_income",
    "blue_collar_pct",
    "pct_renter",
    "pop_density",
    "avg_hh_size",
    "pct_snap",
    "pct_poverty",
    "pct_commute_car",
    "pct_families_with_kids",
    "population",
    "summary",
    "anchors",
]

ZONE_EXPORT_COLUMNS = [
    "zone_name",
    "state",
    "lat",
    "lng",
    "avg_score",
    "tract_count",
    "total_pop",
    "size_class",
    "pct_hispanic",
    "med_hh_income",
    "blue_collar_pct",
    "pct_renter",
    "avg_pop_density",
    "avg_hh_size",
    "pct_snap",
    "summary",
    "anchors",
]

VIEW_SCORE_COLUMNS = {
    "demographic": ["match_score"],
    "twins": ["twin_score", "matched_property", "property_type"],
}


@dataclass(frozen=True)
class ViewSummary:
    total: int
    prime: int
    average: Optional[int]
    states: int


@dataclass(frozen=True)
class ZScoreBar:
    label: str
    value: float
    clamped: float
    width_pct: float
    direction: str
    severity: str


def _passes_common(
    record: AtlasRecord,
    benchmark: str,
    states: Sequence[str],
    min_score: float,
) -> bool:
    if states and record.state not in states:
        return False
    return display_score(record, benchmark) >= min_score


def apply_demographic_filters(
    tracts: Sequence[AtlasRecord],
    benchmark: str = COMPOSITE,
    states: Sequence[str] = (),
    min_score: float = 0.0,
) -> List[AtlasRecord]:
    return [tract for tract in tracts if _passes_common(tract, benchmark, states, min_score)]


def apply_twin_filters(
    twins: Sequence[TwinRecord],
    benchmark: str = COMPOSITE,
    property_type: Optional[str] = None,
    states: Sequence[str] = (),
    min_score: float = 0.0,
) -> List[TwinRecord]:
    filtered = []
    for twin in twins:
        if property_type and twin.property_type != property_type:
            continue
        if benchmark != COMPOSITE and twin.matched_property != benchmark:
            continue
        if _passes_common(twin, benchmark, states, min_score):
            filtered.append(twin)
    return filtered


def zone_matches_search(zone: ZoneRecord, term: str) -> bool:
    query = term.strip().lower()
    if not query:
        return True
    if query in zone.name.lower():
        return True
    return any(query in label.lower() for label in zone.tracts)


def apply_zone_filters(
    zones: Sequence[ZoneRecord],
    benchmark: str = COMPOSITE,
    size_class: Optional[str] = None,
    states: Sequence[str] = (),
    search: str = "",
    min_score: float = 0.0,
) -> List[ZoneRecord]:
    filtered = []
    for zone in zones:
        if size_class and zone.size_class != size_class:
            continue
        if not zone_matches_search(zone, search):
            continue
        if _passes_common(zone, benchmark, states, min_score):
            filtered.append(zone)
    return filtered


def classify_tract(score: float) -> str:
    prime, strong = TRACT_TIER_CUTOFFS
    if score >= prime:
        return TRACT_TIER_LABELS[0]
    if score >= strong:
        return TRACT_TIER_LABELS[1]
    return TRACT_TIER_LABELS[2]


def summarize_view(
    records: Sequence[AtlasRecord],
    view: str,
    benchmark: str = COMPOSITE,
) -> ViewSummary:
    scores = [display_score(record, benchmark) for record in records]
    if view == "twins":
        prime = len({record.get("matched_property") for record in records})
    elif view == "hotzones":
        prime = sum(record.tract_count for record in records if isinstance(record, ZoneRecord))
    else:
        prime = sum(1 for score in scores if score >= TRACT_TIER_CUTOFFS[0])

    average = int(math.floor(sum(scores) / len(scores) + 0.5)) if scores else None
    return ViewSummary(
        total=len(records),
        prime=prime,
        average=average,
        states=len({record.state for record in records}),
    )


def slider_range(records: Sequence[AtlasRecord], benchmark: str = COMPOSITE) -> Tuple[int, int]:
    scores = [score for score in (display_score(r, benchmark) for r in records) if score > 0]
    if not scores:
        return 0, 100
    return int(math.floor(min(scores))), int(math.ceil(max(scores)))


def zscore_bar(zscore: ZScore) -> ZScoreBar:
    clamped = max(-ZSCORE_DISPLAY_LIMIT, min(ZSCORE_DISPLAY_LIMIT, zscore.value))
    low, moderate = ZSCORE_SEVERITY_CUTOFFS
    magnitude = abs(zscore.value)
    if magnitude < low:
        severity = "low"
    elif magnitude < moderate:
        severity = "moderate"
    else:
        severity = "high"
    return ZScoreBar(
        label=zscore.label,
        value=zscore.value,
        clamped=clamped,
        width_pct=abs(clamped) / ZSCORE_DISPLAY_LIMIT * 50,
        direction="positive" if clamped >= 0 else "negative",
        severity=severity,
    )


def display_name(record: AtlasRecord) -> str:
    if isinstance(record, ZoneRecord):
        return record.name
    tract = str(record.get("tract_id") or "") or record.name.split(";")[0].strip()
    short = tract.replace("Census Tract ", "").replace("Tract ", "")
    county = str(record.get("county") or "")
    return f"Tract {short}, {county}"


def benchmark_options(benchmarks: Sequence[Benchmark]) -> Dict[str, str]:
    options = {"Composite score": COMPOSITE}
    for benchmark in benchmarks:
        options[benchmark.label] = benchmark.name
    return options


def export_columns(view: str) -> List[str]:
    if view == "hotzones":
        return ["display_score"] + ZONE_EXPORT_COLUMNS
    columns = list(BASE_EXPORT_COLUMNS)
    columns[5:5] = VIEW_SCORE_COLUMNS.get(view, [])
    return ["display_score"] + columns


def export_frame(
    records: Sequence[AtlasRecord],
    view: str,
    benchmark: str = COMPOSITE,
) -> pd.DataFrame:
    columns = export_columns(view)
    rows = []
    for record in records:
        row = record.to_dict()
        row["display_score"] = display_score(record, benchmark)
        rows.append({column: row.get(column) for column in columns})
    return pd.DataFrame(rows, columns=columns, dtype=object)


def export_csv(
    records: Sequence[AtlasRecord],
    view: str,
    benchmark: str = COMPOSITE,
) -> str:
    if not records:
        raise ValueError("No data to export. Apply filters first.")
    return export_frame(records, view, benchmark).to_csv(index=False, na_rep="")


def export_filename(view: str, day: Optional[date] = None) -> str:
    stamp = (day or date.today()).isoformat()
    return f"atlas_{view}_{stamp}.csv"
