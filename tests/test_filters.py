import pytest

from remotelists.core.errors import InvalidProjection, ValidationFault
from remotelists.core.filters import Comparison, parse_filter


def test_empty_filter_has_no_comparisons():
    assert parse_filter(None) == []
    assert parse_filter("   ") == []


def test_single_comparison():
    assert parse_filter("Status eq 'Active'") == [Comparison("Status", "eq", "Active")]


def test_comparisons_joined_with_and():
    result = parse_filter("Priority ge 2 and Status ne 'Done' AND Score lt 1.5")

    assert result == [
        Comparison("Priority", "ge", 2),
        Comparison("Status", "ne", "Done"),
        Comparison("Score", "lt", 1.5),
    ]


def test_literals():
    result = parse_filter("A eq true and B eq false and C eq null and D eq 'O''Brien' and E gt -3")

    assert [c.value for c in result] == [True, False, None, "O'Brien", -3]


def test_unknown_field_is_rejected():
    with pytest.raises(InvalidProjection):
        parse_filter("Colour eq 'red'", allowed_fields=["Status"])


@pytest.mark.parametrize("expression", [
    "Status",
    "Status eq",
    "Status like 'x'",
    "Status eq 'Active' or Title eq 'x'",
    "'Status' eq 'Active'",
    "Status eq 'unterminated",
    "Status eq Active",
])
def test_malformed_filters(expression):
    with pytest.raises(ValidationFault):
        parse_filter(expression)


class RecordingQuery:
    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def record(*args):
            self.calls.append((name, args))
            return self
        return record

    @property
    def not_(self):
        self.calls.append(("not_", ()))
        return self


def test_apply_maps_operators_to_postgrest_filters():
    query = RecordingQuery()
    for comparison in parse_filter("A ne 1 and B le 2 and C eq null and D ne null"):
        comparison.apply(query)

    assert query.calls == [
        ("neq", ("A", 1)),
        ("lte", ("B", 2)),
        ("is_", ("C", "null")),
        ("not_", ()),
        ("is_", ("D", "null")),
    ]


def test_ordering_against_null_is_rejected():
    with pytest.raises(ValidationFault):
        Comparison("A", "gt", None).apply(RecordingQuery())


@pytest.mark.parametrize("comparison, value, expected", [
    (Comparison("Status", "eq", "Active"), "Active", True),
    (Comparison("Status", "eq", "Active"), "Done", False),
    (Comparison("Priority", "ge", 2), 2, True),
    (Comparison("Priority", "lt", 2), None, False),
    (Comparison("Priority", "gt", 2), "high", False),
    (Comparison("Owner", "eq", None), None, True),
    (Comparison("Owner", "ne", None), None, False),
    (Comparison("Owner", "ne", None), "sam", True),
])
def test_local_matching(comparison, value, expected):
    assert comparison.matches(value) is expected
