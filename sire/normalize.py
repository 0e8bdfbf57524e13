"""
Normalization (StormRecord -> NormalizedRecord)
===============================================

- Event types are lowercased so "TSTM WIND" and "Tstm Wind" aggregate together.
- Damage values come as (value, scale code) pairs, e.g. (25.0, "K") = $25,000.
  The scale code is resolved with a fixed lookup.

Caveat kept on purpose: a code outside the lookup (including lowercase "k"
or "m", digits, "+", "?") resolves to multiplier 1 instead of failing.
`normalize_records` prints how many values were coerced that way so the
reader of a report can judge the effect.
"""

from __future__ import annotations
from collections import Counter
from typing import Iterable, List, Optional

from .models import NormalizedRecord, StormRecord

SCALE_MULTIPLIERS = {"K": 1e3, "M": 1e6, "B": 1e9}


def resolve_scale(code: Optional[str]) -> float:
    """Multiplier for a scale code; missing or unknown codes give 1."""
    if code is None:
        return 1.0
    return SCALE_MULTIPLIERS.get(code, 1.0)


def normalize_record(rec: StormRecord) -> NormalizedRecord:
    return NormalizedRecord(
        row_id=rec.row_id,
        event_type=rec.event_type.lower(),
        begin_date=rec.begin_date,
        fatalities=rec.fatalities,
        injuries=rec.injuries,
        property_damage=rec.property_damage_value * resolve_scale(rec.property_damage_scale),
        crop_damage=rec.crop_damage_value * resolve_scale(rec.crop_damage_scale),
    )


def unrecognized_scale_codes(records: Iterable[StormRecord]) -> Counter:
    """Count non-empty scale codes that are not in SCALE_MULTIPLIERS."""
    c: Counter = Counter()
    for r in records:
        for code in (r.property_damage_scale, r.crop_damage_scale):
            if code and code not in SCALE_MULTIPLIERS:
                c[code] += 1
    return c


def normalize_records(records: List[StormRecord], verbose: bool = True) -> List[NormalizedRecord]:
    out = [normalize_record(r) for r in records]
    if verbose:
        odd = unrecognized_scale_codes(records)
        if odd:
            shown = ", ".join(f"{k!r}={v}" for k, v in odd.most_common(8))
            print(f"Note: {sum(odd.values())} damage values have an unrecognized scale code "
                  f"and were counted with multiplier 1 ({shown})")
    return out
