"""Shared schema validation and sentinel cleaning for atlas datasets."""

from __future__ import annotations

from typing import Dict, Mapping, Set

from scoring_config import CENSUS_MISSING_SENTINEL

TRACT_REQUIRED_KEYS: Set[str] = {"name", "state", "lat", "lng"}
TWIN_REQUIRED_KEYS: Set[str] = TRACT_REQUIRED_KEYS | {"matched_property"}
ZONE_REQUIRED_KEYS: Set[str] = {"zone_name", "state", "lat", "lng"}
BENCHMARK_REQUIRED_KEYS: Set[str] = {"name"}


def clean_record(raw: Mapping[str, object]) -> Dict[str, object]:
    """Return a copy of ``raw`` with census missing-data sentinels set to None."""
    cleaned: Dict[str, object] = {}
    for key, value in raw.items():
        if (
            isinstance(value, (int, float))
            and not isinstance(value, bool)
            and value == CENSUS_MISSING_SENTINEL
        ):
            value = None
        cleaned[key] = value
    return cleaned


def validate_record(record: Mapping[str, object], required: Set[str], label: str) -> None:
    """Raise a ValueError when required keys are missing or empty."""
    missing = {key for key in required if record.get(key) in (None, "")}
    if missing:
        raise ValueError(f"{label} record missing keys: {', '.join(sorted(missing))}")


def validate_twin_payload(payload: object) -> None:
    if not isinstance(payload, Mapping):
        raise ValueError("Twin payload must be an object with 'benchmarks' and 'twins'.")
    if not isinstance(payload.get("twins", []), list):
        raise ValueError("Twin payload 'twins' must be a list.")
    if not isinstance(payload.get("benchmarks", []), list):
        raise ValueError("Twin payload 'benchmarks' must be a list.")
