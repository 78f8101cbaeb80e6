"""Load the tract, twin and hot-zone datasets that feed the atlas.

Each dataset is read from a local directory or a base URL. A dataset that
cannot be fetched or parsed degrades to an empty collection so the other two
still load; the three reads run concurrently and ``load_atlas`` returns once
all of them have finished.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Set, Tuple, Type

import requests

from atlas_records import AtlasRecord, Benchmark, TractRecord, TwinRecord, ZoneRecord
from atlas_schema import (
    BENCHMARK_REQUIRED_KEYS,
    TRACT_REQUIRED_KEYS,
    TWIN_REQUIRED_KEYS,
    ZONE_REQUIRED_KEYS,
    clean_record,
    validate_record,
    validate_twin_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("data")
DEFAULT_TIMEOUT = 30

TRACTS_FILE = "expansion_targets.json"
TWINS_FILE = "property_twins.json"
ZONES_FILE = "hot_zones.json"


@dataclass(frozen=True)
class AtlasDataset:
    tracts: Tuple[TractRecord, ...] = ()
    twins: Tuple[TwinRecord, ...] = ()
    zones: Tuple[ZoneRecord, ...] = ()
    benchmarks: Tuple[Benchmark, ...] = ()

    def zone_names(self) -> Dict[object, str]:
        return {
            zone.cluster_id: zone.name for zone in self.zones if zone.cluster_id is not None
        }

    def states(self) -> List[str]:
        seen: Set[str] = set()
        for record in (*self.tracts, *self.twins, *self.zones):
            if record.state:
                seen.add(record.state)
        return sorted(seen)


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def resolve_source(location: object, filename: str) -> str:
    text = str(location)
    if _is_url(text):
        return f"{text.rstrip('/')}/{filename}"
    return str(Path(text) / filename)


def _read_json(source: str, timeout: int) -> object:
    if _is_url(source):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.json()
    return json.loads(Path(source).read_text(encoding="utf-8"))


def _fetch_payload(source: str, timeout: int) -> object:
    try:
        return _read_json(source, timeout)
    except (requests.RequestException, OSError, ValueError) as exc:
        logger.warning("Failed to load %s: %s", source, exc)
        return None


def _build_records(
    rows: List[object],
    record_type: Type[AtlasRecord],
    required: Set[str],
    label: str,
) -> List[AtlasRecord]:
    records: List[AtlasRecord] = []
    for row in rows:
        if not isinstance(row, Mapping):
            logger.warning("Skipping %s entry that is not an object", label.lower())
            continue
        cleaned = clean_record(row)
        try:
            validate_record(cleaned, required, label)
        except ValueError as exc:
            logger.warning("Skipping %s", exc)
            continue
        records.append(record_type(attributes=cleaned))
    return records


def load_tracts(source: str, timeout: int = DEFAULT_TIMEOUT) -> List[TractRecord]:
    payload = _fetch_payload(source, timeout)
    if not isinstance(payload, list) or not payload:
        return []
    tracts = _build_records(payload, TractRecord, TRACT_REQUIRED_KEYS, "Tract")
    logger.info("Loaded %d demographic targets", len(tracts))
    return tracts


def load_twins(
    source: str,
    timeout: int = DEFAULT_TIMEOUT,
) -> Tuple[List[TwinRecord], List[Benchmark]]:
    payload = _fetch_payload(source, timeout)
    if payload is None:
        return [], []
    try:
        validate_twin_payload(payload)
    except ValueError as exc:
        logger.warning("Failed to load %s: %s", source, exc)
        return [], []

    if not payload.get("twins"):
        return [], []

    twins = _build_records(payload["twins"], TwinRecord, TWIN_REQUIRED_KEYS, "Twin")
    benchmarks: List[Benchmark] = []
    for row in payload.get("benchmarks") or []:
        if not isinstance(row, Mapping):
            continue
        cleaned = clean_record(row)
        try:
            validate_record(cleaned, BENCHMARK_REQUIRED_KEYS, "Benchmark")
        except ValueError as exc:
            logger.warning("Skipping %s", exc)
            continue
        benchmarks.append(Benchmark(attributes=cleaned))
    logger.info("Loaded %d property twins and %d benchmarks", len(twins), len(benchmarks))
    return twins, benchmarks


def load_zones(source: str, timeout: int = DEFAULT_TIMEOUT) -> List[ZoneRecord]:
    payload = _fetch_payload(source, timeout)
    if not isinstance(payload, list) or not payload:
        return []
    zones = _build_records(payload, ZoneRecord, ZONE_REQUIRED_KEYS, "Zone")
    zones.sort(key=lambda zone: zone.avg_score or 0.0, reverse=True)
    logger.info("Loaded %d hot zones", len(zones))
    return zones


def load_atlas(location: object = DEFAULT_DATA_DIR, timeout: int = DEFAULT_TIMEOUT) -> AtlasDataset:
    with ThreadPoolExecutor(max_workers=3) as pool:
        tracts_future = pool.submit(load_tracts, resolve_source(location, TRACTS_FILE), timeout)
        twins_future = pool.submit(load_twins, resolve_source(location, TWINS_FILE), timeout)
        zones_future = pool.submit(load_zones, resolve_source(location, ZONES_FILE), timeout)

        tracts = tracts_future.result()
        twins, benchmarks = twins_future.result()
        zones = zones_future.result()

    return AtlasDataset(
        tracts=tuple(tracts),
        twins=tuple(twins),
        zones=tuple(zones),
        benchmarks=tuple(benchmarks),
    )
