"""
Data model
==========

Each row of the NOAA storm table is converted into a `StormRecord`.
Everything downstream is derived from those records and is also frozen:
every pipeline stage returns new values instead of editing old ones, so
each stage can be run (and tested) on its own.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from .config import AnalysisConfig


@dataclass(frozen=True)
class StormRecord:
    """One observed weather event, as read from the source table."""
    row_id: int
    event_type: str
    begin_date: Optional[datetime]
    fatalities: int
    injuries: int
    property_damage_value: float
    property_damage_scale: Optional[str]
    crop_damage_value: float
    crop_damage_scale: Optional[str]


@dataclass(frozen=True)
class NormalizedRecord:
    """Record with a lowercased event type and damage in absolute US$."""
    row_id: int
    event_type: str
    begin_date: Optional[datetime]
    fatalities: int
    injuries: int
    property_damage: float
    crop_damage: float

    @property
    def year(self) -> Optional[int]:
        return self.begin_date.year if self.begin_date is not None else None


@dataclass(frozen=True)
class MetricTotal:
    """Sum of one metric over every record of one category."""
    category: str
    metric: str
    value: float


@dataclass(frozen=True)
class RankedEntry:
    category: str
    metric: str
    value: float
    rank: int
    is_top3: bool


@dataclass(frozen=True)
class LoadedDataset:
    """Output of the loader: the records plus what went wrong while parsing."""
    records: List[StormRecord]
    source: str
    unparsed_dates: int = 0

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class GroupResult:
    """Every intermediate table of one metric group (health or economic)."""
    group: str
    records_used: int
    totals: List[MetricTotal]
    significant: List[MetricTotal]
    merged: List[MetricTotal]
    ranked: Dict[str, List[RankedEntry]] = field(default_factory=dict)


@dataclass(frozen=True)
class ImpactReport:
    """Ranked results for both metric groups plus the settings used."""
    health: GroupResult
    economic: GroupResult
    config: AnalysisConfig

    def groups(self) -> List[GroupResult]:
        return [self.health, self.economic]


