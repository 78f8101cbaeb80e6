"""Shared scoring configuration and filter parsing utilities."""

from __future__ import annotations

from typing import Dict, List, Tuple

COMPOSITE = "composite"
CENSUS_MISSING_SENTINEL = -666666666

SIM_FEATURES: Tuple[str, ...] = (
    "pct_hispanic",
    "pct_black",
    "pct_asian",
    "blue_collar_pct",
    "pct_renter",
    "pct_singles",
    "med_hh_income",
    "med_home_value",
    "pct_vacancy",
    "pct_families_with_kids",
    "pct_stable",
    "pct_commute_car",
    "pct_hs_only",
    "pct_bachelors",
    "pct_unemployed",
    "pop_density",
    "avg_hh_size",
    "pct_snap",
    "pct_poverty",
    "daytime_ratio",
    "traffic_intensity",
)

# (key, label, is_pct)
ZSCORE_FEATURES: Tuple[Tuple[str, str, bool], ...] = (
    ("pct_hispanic", "Hispanic", True),
    ("med_hh_income", "Income", False),
    ("blue_collar_pct", "Blue Col", True),
    ("pct_renter", "Renter", True),
    ("pop_density", "Density", False),
    ("avg_hh_size", "HH Size", False),
    ("pct_snap", "SNAP", True),
    ("pct_families_with_kids", "Families", True),
)

# Zones expose density under an aggregated key.
FEATURE_FALLBACKS: Dict[str, Tuple[str, ...]] = {
    "pop_density": ("pop_density", "avg_pop_density"),
}

SCORE_FALLBACK_ORDER: Tuple[str, ...] = ("match_score", "avg_score", "twin_score")

ZONE_THRESHOLD_PERCENTILES = (0.67, 0.33)
DEFAULT_ZONE_THRESHOLDS = (50.0, 35.0)
MIN_ZONES_FOR_PERCENTILES = 3

TRACT_TIER_CUTOFFS = (75.0, 60.0)
TRACT_TIER_LABELS = ("Prime Target", "Strong", "Emerging")
ZONE_TIER_LABELS = ("High", "Mid", "Low")

ZSCORE_DISPLAY_LIMIT = 3.0
ZSCORE_SEVERITY_CUTOFFS = (0.5, 1.5)

SIZE_CLASSES: Tuple[str, ...] = (
    "MEGA ZONE",
    "LARGE ZONE",
    "MEDIUM ZONE",
    "MICRO ZONE",
    "SOLO ZONE",
)

KNOWN_STATES: Tuple[str, ...] = ("IL", "IN", "WI", "MI", "OH", "TX")

VIEWS: Tuple[str, ...] = ("demographic", "twins", "hotzones")


def parse_states(raw: str) -> List[str]:
    if not raw.strip():
        return []

    states: List[str] = []
    for piece in raw.split(","):
        code = piece.strip().upper()
        if not code:
            raise ValueError(f"Invalid state list: '{raw}'. Use e.g. IL,TX.")
        if len(code) != 2 or not code.isalpha():
            raise ValueError(f"Invalid state code: '{piece.strip()}'.")
        if code not in KNOWN_STATES:
            raise ValueError(
                f"Unknown state: '{code}'. Valid states: {', '.join(KNOWN_STATES)}."
            )
        if code not in states:
            states.append(code)
    return states
