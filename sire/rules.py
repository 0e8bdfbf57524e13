"""
Merge rules (category relabeling)
=================================

NOAA event types are free text, so the same phenomenon shows up under
several labels ("flash flood" / "flood", "tstm wind" / "thunderstorm wind").
A merge rule maps labels to one canonical name.

Rules are an explicit ordered list. `canonical_label` walks the list and
the FIRST matching rule wins; a label no rule matches keeps its own name.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence


@dataclass(frozen=True)
class MergeRule:
    canonical: str
    predicate: Callable[[str], bool]
    description: str

    def matches(self, label: str) -> bool:
        return self.predicate(label)


def equals(label: str, canonical: str) -> MergeRule:
    target = label.lower()
    return MergeRule(canonical, lambda s: s == target, f'label == "{target}"')


def contains(fragment: str, canonical: str) -> MergeRule:
    frag = fragment.lower()
    return MergeRule(canonical, lambda s: frag in s, f'label contains "{frag}"')


def any_of(labels: Iterable[str], canonical: str) -> MergeRule:
    targets = tuple(l.lower() for l in labels)
    members = frozenset(targets)
    desc = " or ".join(f'label == "{t}"' for t in targets)
    return MergeRule(canonical, lambda s: s in members, desc)


def canonical_label(label: str, rules: Sequence[MergeRule]) -> str:
    for rule in rules:
        if rule.matches(label):
            return rule.canonical
    return label


# Population health (fatalities, injuries)
HEALTH_RULES: List[MergeRule] = [
    equals("excessive heat", "heat"),
    equals("flash flood", "flood"),
    contains("wind", "high wind"),
    equals("heavy snow", "winter storm"),
    equals("rip currents", "rip current"),
    contains("cold", "extreme cold"),
]

# Economic damage (property, crop)
ECONOMIC_RULES: List[MergeRule] = [
    equals("flash flood", "flood"),
    any_of(["hurricane/typhoon", "tropical storm", "hurricane"], "hurricane/tropical storm"),
    any_of(["extreme cold", "frost/freeze"], "frost/freeze/extreme cold"),
]
