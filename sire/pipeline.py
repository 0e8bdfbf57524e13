"""
Reduction pipeline
==================

This is the heart of the project. Every stage is a pure function that takes
a table and returns a new one:

1) filter_records  -> records inside the date window with a positive metric
2) aggregate       -> (category, metric) totals
3) significant     -> totals above threshold * max(total) for their metric
4) relabel         -> totals re-summed under canonical category names
5) rank            -> per-metric ranking, top-3 flagged

`run_group` chains the stages for one metric group and `run_report` runs
both groups (health and economic).
"""

from __future__ import annotations
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .config import TOP_N, AnalysisConfig
from .dsa import merge_sort
from .metrics import ECONOMIC, HEALTH, Metric, MetricGroup
from .models import GroupResult, ImpactReport, MetricTotal, NormalizedRecord, RankedEntry
from .query_lang import compile_predicate, parse
from .rules import MergeRule, canonical_label

RecordPredicate = Callable[[NormalizedRecord], bool]

# ---------------- where-expressions over records ----------------

RECORD_FIELDS = {
    "event_type": "event_type", "type": "event_type", "evtype": "event_type",
    "year": "year", "begin_year": "year",
    "fatalities": "fatalities", "deaths": "fatalities",
    "injuries": "injuries",
    "property_damage": "property_damage", "propdmg": "property_damage",
    "crop_damage": "crop_damage", "cropdmg": "crop_damage",
}

RECORD_FIELD_KINDS = {
    "event_type": "text",
    "year": "number",
    "fatalities": "number",
    "injuries": "number",
    "property_damage": "number",
    "crop_damage": "number",
}


def compile_where(expr: str) -> RecordPredicate:
    """Compile e.g. 'year <= 2005 and event_type contains "flood"'."""
    return compile_predicate(parse(expr), lambda rec, name: getattr(rec, name), RECORD_FIELDS, RECORD_FIELD_KINDS)

# ---------------- Stages ----------------

def _as_date(d) -> date:
    return d.date() if isinstance(d, datetime) else d


def filter_records(
    records: Iterable[NormalizedRecord],
    since: date,
    metrics: Sequence[Metric],
    where: Optional[RecordPredicate] = None,
) -> List[NormalizedRecord]:
    """Keep records that began on/after `since` with at least one metric > 0.

    Records without a parseable begin date are never inside the window.
    """
    lower = _as_date(since)
    out: List[NormalizedRecord] = []
    for r in records:
        if r.begin_date is None or r.begin_date.date() < lower:
            continue
        if not any(m(r) > 0 for m in metrics):
            continue
        if where is not None and not where(r):
            continue
        out.append(r)
    return out


def aggregate(records: Iterable[NormalizedRecord], metrics: Sequence[Metric]) -> List[MetricTotal]:
    """Sum every metric per category.

    Output is grouped metric by metric; categories keep the order in which
    they first appear in `records`.
    """
    sums: Dict[str, List[float]] = {}
    for r in records:
        row = sums.setdefault(r.event_type, [0] * len(metrics))
        for i, m in enumerate(metrics):
            row[i] += m(r)
    return [
        MetricTotal(category=cat, metric=m.name, value=row[i])
        for i, m in enumerate(metrics)
        for cat, row in sums.items()
    ]


def metric_maxima(totals: Iterable[MetricTotal]) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for t in totals:
        if t.metric not in out or t.value > out[t.metric]:
            out[t.metric] = t.value
    return out


def significant(totals: Sequence[MetricTotal], threshold: float) -> List[MetricTotal]:
    """Keep entries with value > threshold * (max value of the same metric).

    A metric whose maximum is not positive keeps nothing.
    """
    maxima = metric_maxima(totals)
    out: List[MetricTotal] = []
    for t in totals:
        mx = maxima[t.metric]
        if mx <= 0:
            continue
        if t.value > threshold * mx:
            out.append(t)
    return out


def relabel(entries: Iterable[MetricTotal], rules: Sequence[MergeRule]) -> List[MetricTotal]:
    """Map each category to its canonical label and re-sum per (label, metric)."""
    merged: Dict[str, Dict[str, float]] = {}
    for e in entries:
        label = canonical_label(e.category, rules)
        per_metric = merged.setdefault(e.metric, {})
        per_metric[label] = per_metric.get(label, 0) + e.value
    return [
        MetricTotal(category=label, metric=metric, value=value)
        for metric, per_metric in merged.items()
        for label, value in per_metric.items()
    ]


def rank(entries: Iterable[MetricTotal], top_n: int = TOP_N) -> Dict[str, List[RankedEntry]]:
    """Rank categories per metric, largest value first.

    Ties keep input order, so ranks are always exactly 1..N.
    """
    by_metric: Dict[str, List[MetricTotal]] = {}
    for e in entries:
        by_metric.setdefault(e.metric, []).append(e)

    out: Dict[str, List[RankedEntry]] = {}
    for metric, group in by_metric.items():
        ordered = merge_sort(group, key=lambda t: t.value, reverse=True)
        out[metric] = [
            RankedEntry(category=t.category, metric=metric, value=t.value,
                        rank=i, is_top3=i <= top_n)
            for i, t in enumerate(ordered, start=1)
        ]
    return out

# ---------------- Orchestration ----------------

def run_group(
    records: Sequence[NormalizedRecord],
    group: MetricGroup,
    config: Optional[AnalysisConfig] = None,
) -> GroupResult:
    config = config or AnalysisConfig()
    where = compile_where(config.where) if config.where else None
    used = filter_records(records, config.since, group.metrics, where)
    totals = aggregate(used, group.metrics)
    sig = significant(totals, config.threshold)
    merged = relabel(sig, group.rules)
    return GroupResult(
        group=group.name,
        records_used=len(used),
        totals=totals,
        significant=sig,
        merged=merged,
        ranked=rank(merged),
    )


def run_report(records: Sequence[NormalizedRecord], config: Optional[AnalysisConfig] = None) -> ImpactReport:
    """Run the health and the economic pipelines on the same records."""
    config = config or AnalysisConfig()
    return ImpactReport(
        health=run_group(records, HEALTH, config),
        economic=run_group(records, ECONOMIC, config),
        config=config,
    )
