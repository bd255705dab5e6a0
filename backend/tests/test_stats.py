import copy
import math

import pytest

from pattern_inspector.core.stats import (
    CategoricalStats,
    NumericStats,
    as_text,
    compute_numeric_stats,
    is_numeric_column,
    summarize,
    summarize_groups,
    summary_to_dict,
    to_number,
)


class TestValueConversion:

    def test_to_number(self):
        assert to_number(3) == 3.0
        assert to_number(" 4.5 ") == 4.5
        assert to_number("abc") is None
        assert to_number("") is None
        assert to_number(None) is None
        assert to_number(float("nan")) is None
        assert to_number(True) is None

    def test_as_text_drops_integral_fraction(self):
        assert as_text(1001.0) == "1001"
        assert as_text(2.5) == "2.5"
        assert as_text("south") == "south"


class TestColumnClassification:

    def test_any_numeric_value_makes_column_numeric(self):
        assert is_numeric_column(["a", "b", "3"])

    def test_text_only_column_is_categorical(self):
        assert not is_numeric_column(["a", "b", None, ""])

    def test_empty_column_is_categorical(self):
        assert not is_numeric_column([])


class TestSummarize:

    def test_one_stats_per_attribute_without_mutation(self, rows):
        before = copy.deepcopy(rows)
        summary = summarize(rows)
        assert rows == before
        assert list(summary) == ["fips", "county", "state", "income", "target"]

    def test_numeric_stats(self, rows):
        income = summarize(rows)["income"]
        assert isinstance(income, NumericStats)
        assert income.min == 10
        assert income.max == 90
        assert income.min <= income.mean <= income.max
        assert math.isclose(income.mean, 160 / 3)

    @pytest.mark.parametrize("value", [0.1, 0.7, 1.1, 2.3])
    @pytest.mark.parametrize("n", [3, 5, 7, 10, 13])
    def test_constant_fractional_column_mean_within_range(self, value, n):
        stats = summarize([{"x": value}] * n)["x"]
        assert stats.min <= stats.mean <= stats.max
        assert stats.mean == value

    def test_mixed_column_ignores_unparseable_values(self):
        summary = summarize([{"x": "1"}, {"x": "oops"}, {"x": 3}, {"x": ""}])
        assert summary["x"] == NumericStats(mean=2.0, min=1.0, max=3.0)

    def test_categorical_counts_sorted_with_stable_ties(self):
        data = [{"c": v} for v in ["b", "a", "a", "c", "b", "a", None, ""]]
        stats = summarize(data)["c"]
        assert isinstance(stats, CategoricalStats)
        assert [(c.value, c.count) for c in stats.categories] == [("a", 3), ("b", 2), ("c", 1)]
        assert stats.total == 6

    def test_ties_keep_first_seen_order(self):
        stats = summarize([{"c": v} for v in ["z", "y", "x"]])["c"]
        assert [c.value for c in stats.categories] == ["z", "y", "x"]

    def test_empty_string_excluded_from_counts(self):
        stats = summarize([{"region": ""}, {"region": "west"}])["region"]
        assert [(c.value, c.count) for c in stats.categories] == [("west", 1)]

    def test_attribute_missing_from_some_rows(self):
        summary = summarize([{"a": "x"}, {"b": 2}])
        assert set(summary) == {"a", "b"}
        assert summary["b"] == NumericStats(mean=2.0, min=2.0, max=2.0)

    def test_numeric_stats_without_values_are_nan(self):
        stats = compute_numeric_stats([None, "", "n/a"])
        assert math.isnan(stats.mean) and math.isnan(stats.min) and math.isnan(stats.max)

    def test_empty_rows(self):
        assert summarize([]) == {}

    def test_all_null_column_is_empty_categorical(self):
        stats = summarize([{"a": None}, {"a": ""}])["a"]
        assert stats == CategoricalStats(categories=())


class TestSummarizeGroups:

    def test_groups_ordered_by_size(self):
        data = [
            {"state": "S1", "v": 1},
            {"state": "S2", "v": 2},
            {"state": "S2", "v": 4},
            {"state": None, "v": 8},
        ]
        groups = summarize_groups(data, "state")
        assert list(groups) == ["S2", "S1"]
        assert groups["S2"]["v"] == NumericStats(mean=3.0, min=2.0, max=4.0)


class TestSerialization:

    def test_nan_stats_serialize_as_none(self):
        out = summary_to_dict({"n": NumericStats(mean=math.nan, min=math.nan, max=math.nan)})
        assert out == {"n": {"type": "numeric", "mean": None, "min": None, "max": None}}

    def test_categorical_to_dict(self):
        out = summary_to_dict(summarize([{"c": "a"}, {"c": "a"}]))
        assert out == {"c": {"type": "categorical", "categories": [{"value": "a", "count": 2}]}}
