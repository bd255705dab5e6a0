import pytest

from pattern_inspector.core.constraints import (
    UNSPECIFIED_BOUND_DEFAULT,
    CategoricalConstraint,
    ConstraintError,
    NumericConstraint,
    constraint_from_dict,
    filter_rows,
    matches,
    merge,
)


def cat(*values):
    return CategoricalConstraint(allowed=frozenset(values))


class TestConstraintFromDict:

    def test_numeric_with_sentinel(self):
        c = constraint_from_dict("income", {"lb": "-inf", "ub": 50000})
        assert c == NumericConstraint(lb="-inf", ub=50000.0)

    def test_categorical(self):
        assert constraint_from_dict("region", {"in": ["west", "south"]}) == cat("west", "south")

    def test_empty_entries_are_dropped(self):
        assert constraint_from_dict("a", None) is None
        assert constraint_from_dict("a", {}) is None
        assert constraint_from_dict("a", {"in": []}) is None

    def test_unknown_shape_rejected(self):
        with pytest.raises(ConstraintError):
            constraint_from_dict("a", {"eq": 3})

    def test_non_numeric_bound_rejected(self):
        with pytest.raises(ConstraintError):
            constraint_from_dict("a", {"lb": "low"})


class TestEvaluator:

    def test_bounds_are_inclusive(self):
        c = {"x": NumericConstraint(lb=10, ub=20)}
        assert matches({"x": 10}, c)
        assert matches({"x": 20}, c)
        assert not matches({"x": 9.99}, c)
        assert not matches({"x": 20.01}, c)

    def test_absent_and_sentinel_bounds_are_open(self):
        for c in (NumericConstraint(), NumericConstraint(lb="-inf", ub="inf")):
            assert matches({"x": -1e12}, {"x": c})
            assert matches({"x": 1e12}, {"x": c})

    def test_numeric_fails_closed_on_bad_values(self):
        c = {"x": NumericConstraint(ub=5)}
        assert not matches({"x": None}, c)
        assert not matches({"x": "abc"}, c)
        assert not matches({}, c)
        assert matches({"x": "4"}, c)

    def test_categorical_membership_uses_text_form(self):
        c = {"code": cat("12", "west")}
        assert matches({"code": 12}, c)
        assert matches({"code": 12.0}, c)
        assert matches({"code": "west"}, c)
        assert not matches({"code": "east"}, c)

    def test_empty_string_fails_categorical(self):
        assert not matches({"region": ""}, {"region": cat("west")})

    def test_every_constraint_must_hold(self):
        c = {"x": NumericConstraint(lb=0), "r": cat("a")}
        assert matches({"x": 1, "r": "a"}, c)
        assert not matches({"x": 1, "r": "b"}, c)

    def test_falsy_entries_are_skipped(self):
        assert matches({"x": 1}, {"x": None})

    def test_empty_set_returns_all_rows_in_order(self, rows):
        assert filter_rows(rows, {}) == rows

    def test_filter_preserves_order(self, rows):
        result = filter_rows(rows, {"income": NumericConstraint(lb=50)})
        assert [r["fips"] for r in result] == [2, 3]


class TestMerge:

    def test_numeric_union(self):
        merged = merge(NumericConstraint(lb=10, ub=20), NumericConstraint(lb=15, ub=30))
        assert merged == NumericConstraint(lb=10, ub=30)

    def test_sentinels_win(self):
        merged = merge(NumericConstraint(lb="-inf", ub=5), NumericConstraint(lb=1, ub="inf"))
        assert merged == NumericConstraint(lb="-inf", ub="inf")

    def test_one_side_unspecified_takes_the_other(self):
        merged = merge(NumericConstraint(lb=None, ub=5), NumericConstraint(lb=3, ub=None))
        assert merged == NumericConstraint(lb=3, ub=5)

    def test_both_unspecified_fall_back_to_default(self):
        merged = merge(NumericConstraint(lb=None, ub=5), NumericConstraint(lb=None, ub=8))
        assert merged.lb == UNSPECIFIED_BOUND_DEFAULT
        assert merged.ub == 8

    def test_equal_inputs_return_first_operand(self):
        a = NumericConstraint(lb=None, ub=5)
        assert merge(a, NumericConstraint(lb=None, ub=5)) is a

    def test_categorical_union(self):
        assert merge(cat("a", "b"), cat("b", "c")) == cat("a", "b", "c")

    def test_kind_mismatch_keeps_first(self):
        a = NumericConstraint(lb=1, ub=2)
        assert merge(a, cat("x")) is a

    @pytest.mark.parametrize("a,b,c", [
        (NumericConstraint(lb=10, ub=20), NumericConstraint(lb=15, ub=30), NumericConstraint(lb=-5, ub=12)),
        (NumericConstraint(lb="-inf", ub=20), NumericConstraint(lb=15, ub=30), NumericConstraint(lb=1, ub="inf")),
        (cat("a"), cat("b", "c"), cat("a", "d")),
    ])
    def test_commutative_associative_idempotent(self, a, b, c):
        assert merge(a, b) == merge(b, a)
        assert merge(merge(a, b), c) == merge(a, merge(b, c))
        assert merge(a, a) == a
