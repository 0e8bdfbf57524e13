"""
Metric catalogue
================

A metric is a named numeric column of `NormalizedRecord`. Metrics are
analysed in two groups, each with its own merge rules and display unit:

- health:   fatalities, injuries                  (people)
- economic: property_damage, crop_damage          (billions of US$)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .config import ECONOMIC_UNIT
from .models import NormalizedRecord
from .rules import ECONOMIC_RULES, HEALTH_RULES, MergeRule


@dataclass(frozen=True)
class Metric:
    name: str
    label: str
    getter: Callable[[NormalizedRecord], float]

    def __call__(self, rec: NormalizedRecord) -> float:
        return self.getter(rec)


@dataclass(frozen=True)
class MetricGroup:
    """Metrics that are filtered, merged, ranked and charted together."""
    name: str
    title: str
    metrics: Tuple[Metric, ...]
    rules: Tuple[MergeRule, ...]
    unit_divisor: float = 1.0
    unit_label: str = ""

    def metric_names(self) -> List[str]:
        return [m.name for m in self.metrics]

    def metric(self, name: str) -> Metric:
        for m in self.metrics:
            if m.name == name:
                return m
        raise KeyError(f"Unknown metric {name!r} for group {self.name!r}")


FATALITIES = Metric("fatalities", "Fatalities", lambda r: r.fatalities)
INJURIES = Metric("injuries", "Injuries", lambda r: r.injuries)
PROPERTY_DAMAGE = Metric("property_damage", "Property damage", lambda r: r.property_damage)
CROP_DAMAGE = Metric("crop_damage", "Crop damage", lambda r: r.crop_damage)

HEALTH = MetricGroup(
    name="health",
    title="Population health impact",
    metrics=(FATALITIES, INJURIES),
    rules=tuple(HEALTH_RULES),
    unit_divisor=1.0,
    unit_label="people",
)

ECONOMIC = MetricGroup(
    name="economic",
    title="Economic impact",
    metrics=(PROPERTY_DAMAGE, CROP_DAMAGE),
    rules=tuple(ECONOMIC_RULES),
    unit_divisor=ECONOMIC_UNIT,
    unit_label="billion US$",
)

GROUPS: Tuple[MetricGroup, ...] = (HEALTH, ECONOMIC)

_BY_NAME: Dict[str, MetricGroup] = {g.name: g for g in GROUPS}


def get_group(name: str) -> MetricGroup:
    key = name.lower().strip()
    if key not in _BY_NAME:
        raise ValueError(f"group must be one of: {', '.join(_BY_NAME)}")
    return _BY_NAME[key]
