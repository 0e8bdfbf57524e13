"""
Interactive session
===================

The pipeline in `pipeline.py` is a set of pure functions. `StormSession`
is the small amount of state the CLI needs around it:

1) Load dataset -> StormRecords (immutable), normalized once
2) Keep the *current* AnalysisConfig (window start, threshold, where-filter)
3) Every change pushes the previous config on an undo stack
4) `run()` recomputes the full report from scratch for the current config

Reports are cached per config value; because configs are frozen
dataclasses, equal settings always map to the same cached report.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional
import csv
import json

from .config import AnalysisConfig, parse_since, validate_threshold
from .models import ImpactReport, LoadedDataset, NormalizedRecord
from .normalize import normalize_records, unrecognized_scale_codes
from .pipeline import compile_where, run_report


@dataclass
class StormSession:
    """Loaded dataset + current analysis settings with undo/redo."""
    dataset: LoadedDataset
    config: AnalysisConfig = field(default_factory=AnalysisConfig)
    # Commands that changed the result (for the report footer)
    command_log: List[str] = field(default_factory=list)
    records: List[NormalizedRecord] = field(init=False)

    _undo: List[AnalysisConfig] = field(default_factory=list, init=False)
    _redo: List[AnalysisConfig] = field(default_factory=list, init=False)
    _cache: Dict[AnalysisConfig, ImpactReport] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self.records = normalize_records(self.dataset.records)

    # ---------------- History (Stacks) ----------------
    def _push(self, new: AnalysisConfig) -> None:
        self._undo.append(self.config)
        self._redo.clear()
        self.config = new

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self.config)
        self.config = self._undo.pop()
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self.config)
        self.config = self._redo.pop()
        return True

    # ---------------- Settings ----------------
    def reset(self) -> None:
        """Back to the default window, threshold and no where-filter."""
        self._push(AnalysisConfig())

    def since(self, when) -> None:
        d = when if isinstance(when, date) else parse_since(when)
        self._push(self.config.with_changes(since=d))

    def threshold(self, value: float) -> None:
        self._push(self.config.with_changes(threshold=validate_threshold(value)))

    def where(self, expr: Optional[str]) -> None:
        """Restrict records with a query expression; empty/None clears it."""
        expr = (expr or "").strip() or None
        if expr is not None:
            compile_where(expr)  # fail now, not on the next run
        self._push(self.config.with_changes(where=expr))

    # ---------------- Results ----------------
    def run(self) -> ImpactReport:
        report = self._cache.get(self.config)
        if report is None:
            report = run_report(self.records, self.config)
            self._cache[self.config] = report
        return report

    def event_types(self, prefix: str = "") -> List[str]:
        p = prefix.lower()
        return sorted({r.event_type for r in self.records if r.event_type.startswith(p)})

    def scale_code_caveats(self) -> Dict[str, int]:
        return dict(unrecognized_scale_codes(self.dataset.records).most_common())

# ---------------- Exports ----------------

EXPORT_FIELDS = ["group", "metric", "rank", "category", "value", "is_top3"]


def ranked_rows(report: ImpactReport) -> List[dict]:
    rows: List[dict] = []
    for g in report.groups():
        for metric, entries in g.ranked.items():
            for e in entries:
                rows.append({
                    "group": g.group,
                    "metric": metric,
                    "rank": e.rank,
                    "category": e.category,
                    "value": e.value,
                    "is_top3": e.is_top3,
                })
    return rows


def export_csv(report: ImpactReport, path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=EXPORT_FIELDS)
        w.writeheader()
        w.writerows(ranked_rows(report))


def export_json(report: ImpactReport, path: str) -> None:
    """Export ranked entries plus the settings that produced them."""
    payload = {
        "config": {
            "since": report.config.since.isoformat(),
            "threshold": report.config.threshold,
            "where": report.config.where,
        },
        "ranked": ranked_rows(report),
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
