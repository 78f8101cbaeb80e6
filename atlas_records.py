"""Record types shared by the tract, twin and hot-zone datasets.

All three datasets carry the same optional demographic feature keys next to
their own identity fields. Each record keeps its cleaned source mapping and
exposes typed accessors over it; the scoring engine only ever reads features
through ``get``/``value`` so the variants stay interchangeable.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional, Tuple


def coerce_value(value: object) -> Optional[float]:
    """Return ``value`` as a finite float, or None when it is absent or unusable."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, numbers.Real):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


@dataclass(frozen=True)
class AtlasRecord:
    attributes: Mapping[str, object] = field(default_factory=dict)
    indexed_score: Optional[float] = None

    def get(self, key: str, default: object = None) -> object:
        return self.attributes.get(key, default)

    def value(self, key: str) -> Optional[float]:
        return coerce_value(self.attributes.get(key))

    def with_indexed_score(self, score: float) -> "AtlasRecord":
        return replace(self, indexed_score=score)

    @property
    def name(self) -> str:
        return str(self.attributes.get("name") or "")

    @property
    def state(self) -> str:
        return str(self.attributes.get("state") or "")

    @property
    def lat(self) -> Optional[float]:
        return self.value("lat")

    @property
    def lng(self) -> Optional[float]:
        return self.value("lng")

    @property
    def population(self) -> Optional[float]:
        return self.value("population")

    @property
    def match_score(self) -> Optional[float]:
        return self.value("match_score")

    @property
    def twin_score(self) -> Optional[float]:
        return self.value("twin_score")

    @property
    def avg_score(self) -> Optional[float]:
        return self.value("avg_score")

    def to_dict(self) -> Dict[str, object]:
        row = dict(self.attributes)
        if self.indexed_score is not None:
            row["indexed_score"] = self.indexed_score
        return row


@dataclass(frozen=True)
class TractRecord(AtlasRecord):
    @property
    def county(self) -> str:
        return str(self.attributes.get("county") or "")

    @property
    def tract_id(self) -> str:
        return str(self.attributes.get("tract_id") or "")


@dataclass(frozen=True)
class TwinRecord(TractRecord):
    @property
    def matched_property(self) -> str:
        return str(self.attributes.get("matched_property") or "")

    @property
    def property_type(self) -> str:
        return str(self.attributes.get("property_type") or "")

    @property
    def twin_matches(self) -> List[Tuple[str, float]]:
        matches = self.attributes.get("twin_matches") or []
        pairs: List[Tuple[str, float]] = []
        for match in matches:
            if not isinstance(match, Mapping):
                continue
            pairs.append((str(match.get("property", "")), coerce_value(match.get("score")) or 0.0))
        return pairs


@dataclass(frozen=True)
class ZoneRecord(AtlasRecord):
    @property
    def name(self) -> str:
        return str(self.attributes.get("zone_name") or "")

    @property
    def population(self) -> Optional[float]:
        return self.value("total_pop")

    @property
    def cluster_id(self) -> object:
        return self.attributes.get("cluster_id")

    @property
    def size_class(self) -> str:
        return str(self.attributes.get("size_class") or "")

    @property
    def tract_count(self) -> int:
        count = self.value("tract_count")
        return int(count) if count is not None else 0

    @property
    def tracts(self) -> List[str]:
        return [str(label) for label in self.attributes.get("tracts") or []]


@dataclass(frozen=True)
class Benchmark:
    """An existing property whose feature profile anchors similarity scoring."""

    attributes: Mapping[str, object] = field(default_factory=dict)

    def get(self, key: str, default: object = None) -> object:
        return self.attributes.get(key, default)

    def value(self, key: str) -> Optional[float]:
        return coerce_value(self.attributes.get(key))

    @property
    def name(self) -> str:
        return str(self.attributes.get("name") or "")

    @property
    def type(self) -> str:
        return str(self.attributes.get("type") or "")

    @property
    def label(self) -> str:
        if self.type:
            return f"{self.name} ({self.type})"
        return self.name

    @property
    def short_name(self) -> str:
        return self.name.split("(")[0].strip()
