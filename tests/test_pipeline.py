from datetime import date

import pytest

from conftest import make_rec
from sire.config import AnalysisConfig
from sire.metrics import CROP_DAMAGE, ECONOMIC, FATALITIES, HEALTH, INJURIES, PROPERTY_DAMAGE
from sire.models import MetricTotal
from sire.pipeline import aggregate, filter_records, rank, relabel, run_group, run_report, significant
from sire.rules import ECONOMIC_RULES, HEALTH_RULES

HEALTH_METRICS = (FATALITIES, INJURIES)


# ---------------- filter ----------------

def test_filter_keeps_window_and_positive_metric_only():
    recs = [
        make_rec("heat", begin="1995-12-31", fatalities=5),
        make_rec("heat", begin="1996-01-01", fatalities=5),
        make_rec("hail", begin="2000-01-01"),
        make_rec("flood", begin="2000-01-01", injuries=1),
        make_rec("flood", begin=None, fatalities=9),
    ]
    kept = filter_records(recs, date(1996, 1, 1), HEALTH_METRICS)
    assert [(r.event_type, r.begin_date.year) for r in kept] == [("heat", 1996), ("flood", 2000)]


def test_filter_uses_only_the_selected_metrics():
    recs = [make_rec("hail", property_damage=1000.0)]
    assert filter_records(recs, date(1996, 1, 1), HEALTH_METRICS) == []
    assert len(filter_records(recs, date(1996, 1, 1), (PROPERTY_DAMAGE, CROP_DAMAGE))) == 1


def test_filter_applies_where_predicate():
    recs = [make_rec("heat", fatalities=1), make_rec("flood", fatalities=1)]
    kept = filter_records(recs, date(1996, 1, 1), HEALTH_METRICS, where=lambda r: r.event_type == "flood")
    assert [r.event_type for r in kept] == ["flood"]


# ---------------- aggregate ----------------

def test_aggregate_sums_per_category_in_first_appearance_order():
    recs = [
        make_rec("tornado", fatalities=2, injuries=10),
        make_rec("heat", fatalities=7),
        make_rec("tornado", fatalities=3, injuries=1),
    ]
    totals = aggregate(recs, HEALTH_METRICS)
    assert totals == [
        MetricTotal("tornado", "fatalities", 5),
        MetricTotal("heat", "fatalities", 7),
        MetricTotal("tornado", "injuries", 11),
        MetricTotal("heat", "injuries", 0),
    ]


def test_aggregate_conserves_sums():
    recs = [make_rec(t, fatalities=f, injuries=i, property_damage=p)
            for t, f, i, p in [("a", 1, 0, 1.5), ("b", 4, 2, 0.0), ("a", 0, 9, 2.25), ("c", 3, 3, 10.0)]]
    for metric in (FATALITIES, INJURIES, PROPERTY_DAMAGE):
        totals = aggregate(recs, [metric])
        assert sum(t.value for t in totals) == pytest.approx(sum(metric(r) for r in recs))


def test_aggregate_of_nothing_is_empty():
    assert aggregate([], HEALTH_METRICS) == []


# ---------------- significance ----------------

def test_significance_threshold_invariant():
    totals = [MetricTotal(c, "fatalities", v) for c, v in
              [("a", 1000), ("b", 51), ("c", 50), ("d", 10), ("e", 0)]]
    kept = significant(totals, 0.05)
    assert [t.category for t in kept] == ["a", "b"]
    for t in kept:
        assert t.value > 0.05 * 1000
    for t in totals:
        if t not in kept:
            assert t.value <= 0.05 * 1000


def test_significance_is_per_metric():
    totals = [
        MetricTotal("a", "fatalities", 100), MetricTotal("b", "fatalities", 2),
        MetricTotal("a", "injuries", 2), MetricTotal("b", "injuries", 100),
    ]
    kept = significant(totals, 0.05)
    assert {(t.category, t.metric) for t in kept} == {("a", "fatalities"), ("b", "injuries")}


def test_significance_with_zero_maximum_keeps_nothing():
    totals = [MetricTotal("a", "crop_damage", 0.0), MetricTotal("b", "crop_damage", 0.0),
              MetricTotal("a", "property_damage", 10.0)]
    kept = significant(totals, 0.05)
    assert kept == [MetricTotal("a", "property_damage", 10.0)]


# ---------------- relabel ----------------

def test_relabel_merges_hurricane_and_tropical_storm():
    entries = [MetricTotal("hurricane", "property_damage", 10), MetricTotal("tropical storm", "property_damage", 4)]
    assert relabel(entries, ECONOMIC_RULES) == [MetricTotal("hurricane/tropical storm", "property_damage", 14)]


@pytest.mark.parametrize("label, canonical", [
    ("excessive heat", "heat"),
    ("flash flood", "flood"),
    ("tstm wind", "high wind"),
    ("thunderstorm winds", "high wind"),
    ("extreme cold/wind chill", "high wind"),  # wind rule comes before cold
    ("heavy snow", "winter storm"),
    ("rip currents", "rip current"),
    ("extreme cold", "extreme cold"),
    ("cold/wind chill", "high wind"),
    ("cold", "extreme cold"),
    ("tornado", "tornado"),
    ("heat", "heat"),
])
def test_health_rules_first_match_wins(label, canonical):
    [merged] = relabel([MetricTotal(label, "fatalities", 1)], HEALTH_RULES)
    assert merged.category == canonical


@pytest.mark.parametrize("label, canonical", [
    ("flash flood", "flood"),
    ("hurricane/typhoon", "hurricane/tropical storm"),
    ("extreme cold", "frost/freeze/extreme cold"),
    ("frost/freeze", "frost/freeze/extreme cold"),
    ("high wind", "high wind"),
    ("cold", "cold"),
])
def test_economic_rules(label, canonical):
    [merged] = relabel([MetricTotal(label, "crop_damage", 1)], ECONOMIC_RULES)
    assert merged.category == canonical


def test_relabel_keeps_metrics_apart():
    entries = [MetricTotal("flash flood", "fatalities", 3), MetricTotal("flood", "injuries", 4),
               MetricTotal("flood", "fatalities", 2)]
    assert relabel(entries, HEALTH_RULES) == [
        MetricTotal("flood", "fatalities", 5),
        MetricTotal("flood", "injuries", 4),
    ]


# ---------------- rank ----------------

def test_rank_is_total_and_ties_keep_input_order():
    entries = [MetricTotal(c, "fatalities", v) for c, v in
               [("a", 5), ("b", 9), ("c", 5), ("d", 1), ("e", 9)]]
    ranked = rank(entries)["fatalities"]
    assert [e.category for e in ranked] == ["b", "e", "a", "c", "d"]
    assert [e.rank for e in ranked] == [1, 2, 3, 4, 5]
    assert [e.is_top3 for e in ranked] == [True, True, True, False, False]


def test_rank_groups_by_metric():
    entries = [MetricTotal("a", "fatalities", 1), MetricTotal("a", "injuries", 3), MetricTotal("b", "injuries", 4)]
    ranked = rank(entries)
    assert list(ranked) == ["fatalities", "injuries"]
    assert [e.category for e in ranked["injuries"]] == ["b", "a"]


# ---------------- orchestration ----------------

def test_end_to_end_fatalities_ranking(synthetic_records):
    result = run_group(synthetic_records, HEALTH)
    fat = result.ranked["fatalities"]
    assert [(e.category, e.rank, e.is_top3) for e in fat] == [
        ("heat", 1, True), ("tornado", 2, True), ("flood", 3, True),
    ]
    # injuries: only tornado has any; zero totals are dropped
    assert [e.category for e in result.ranked["injuries"]] == ["tornado"]
    assert result.records_used == 3


def test_run_report_is_idempotent(synthetic_records):
    recs = synthetic_records + [make_rec("hurricane", property_damage=5e9, crop_damage=1e8)]
    assert run_report(recs) == run_report(recs)


def test_run_report_rank_totality():
    recs = [make_rec(f"type{i}", fatalities=10 + i, injuries=i % 3 + 1, property_damage=1e6 * (i + 1))
            for i in range(12)]
    report = run_report(recs, AnalysisConfig(threshold=0.0))
    for g in report.groups():
        for metric, entries in g.ranked.items():
            labels = {t.category for t in g.merged if t.metric == metric}
            assert sorted(e.rank for e in entries) == list(range(1, len(labels) + 1))


def test_run_group_respects_window_and_where():
    recs = [
        make_rec("heat", begin="1990-01-01", fatalities=100),
        make_rec("flood", begin="2001-01-01", fatalities=10),
        make_rec("tornado", begin="2010-01-01", fatalities=20),
    ]
    cfg = AnalysisConfig(since=date(2000, 1, 1), where="year < 2005")
    result = run_group(recs, HEALTH, cfg)
    assert [e.category for e in result.ranked["fatalities"]] == ["flood"]


def test_economic_group_merges_before_ranking():
    recs = [
        make_rec("hurricane", property_damage=10e9),
        make_rec("tropical storm", property_damage=4e9),
        make_rec("flood", property_damage=12e9),
    ]
    result = run_group(recs, ECONOMIC)
    ranked = result.ranked["property_damage"]
    assert [(e.category, e.value) for e in ranked] == [("hurricane/tropical storm", 14e9), ("flood", 12e9)]
    assert result.ranked.get("crop_damage", []) == []


def test_labels_below_threshold_are_not_rescued_by_merging():
    # 3 + 3 would clear 5% of 100 after merging, but each alone does not
    recs = [
        make_rec("flood", property_damage=100.0),
        make_rec("hurricane", property_damage=3.0),
        make_rec("tropical storm", property_damage=3.0),
    ]
    result = run_group(recs, ECONOMIC)
    assert [e.category for e in result.ranked["property_damage"]] == ["flood"]
    assert [t.category for t in result.significant] == ["flood"]
