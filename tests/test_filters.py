"""Unit tests for record filter predicates."""

import logging

import pytest

from seedloader.errors import ConfigurationError
from seedloader.services.filters import PredicateKind, apply_filter, detect_kind, evaluate

RECORD = {
    "Name": "Acme Corp",
    "Type": "Customer",
    "Employees": 250,
    "Revenue": "1200.5",
    "Active": True,
    "Tags": ["a", "b", "c"],
    "Address": {"City": "Berlin"},
    "Parent": None,
}


@pytest.mark.parametrize("predicate", [
    {"equals": {"field": "Type", "value": "Customer"}},
    {"exists": "Address.City"},
    {"missing": "Parent"},
    {"gt": {"field": "Employees", "value": 100}},
    {"regex": {"field": "Name", "pattern": "^acme", "flags": "i"}},
    {"not": {"equals": {"field": "Type", "value": "Partner"}}},
])
def test_single_predicate_matches_its_list_form(predicate) -> None:
    """A predicate and a one-element list of it evaluate the same."""
    assert evaluate(RECORD, [predicate]) == evaluate(RECORD, predicate)
    assert evaluate(RECORD, predicate) is True


def test_unknown_predicate_kind_matches() -> None:
    """Predicates of an unknown kind keep the record."""
    assert evaluate(RECORD, {"fuzzy": {"field": "Name", "value": "x"}}) is True
    assert apply_filter([RECORD], [{"somethingElse": True}]) == [RECORD]


def test_boolean_specs() -> None:
    """None and True keep everything, False keeps nothing."""
    assert apply_filter([RECORD], None) == [RECORD]
    assert apply_filter([RECORD], True) == [RECORD]
    assert apply_filter([RECORD], False) == []


def test_case_insensitive_predicates_lower_both_sides() -> None:
    """ci applies to the record value and the operand alike."""
    assert evaluate(RECORD, {"equals": {"field": "Type", "value": "CUSTOMER", "ci": True}})
    assert not evaluate(RECORD, {"equals": {"field": "Type", "value": "CUSTOMER"}})
    assert evaluate(RECORD, {"in": {"field": "Type", "values": ["partner", "customer"], "ci": True}})
    assert evaluate(RECORD, {"contains": {"field": "Name", "value": "CORP", "ci": True}})
    assert not evaluate(RECORD, {"contains": {"field": "Name", "value": "CORP"}})


def test_numeric_predicates_with_non_numeric_operand_are_false() -> None:
    """gt/gte/lt/lte never match when either side is not a number."""
    assert not evaluate(RECORD, {"gt": {"field": "Name", "value": 1}})
    assert not evaluate(RECORD, {"lt": {"field": "Employees", "value": "many"}})
    assert not evaluate(RECORD, {"gte": {"field": "Active", "value": 0}})
    assert not evaluate(RECORD, {"lte": {"field": "Nope", "value": 5}})


def test_numeric_predicates_coerce_numeric_strings() -> None:
    """Numeric strings compare as numbers."""
    assert evaluate(RECORD, {"gte": {"field": "Revenue", "value": "1200.5"}})
    assert evaluate(RECORD, {"lt": {"field": "Revenue", "value": 2000}})


def test_equals_is_strict_about_booleans() -> None:
    """True is not equal to 1."""
    assert evaluate(RECORD, {"equals": {"field": "Active", "value": True}})
    assert not evaluate(RECORD, {"equals": {"field": "Active", "value": 1}})
    assert evaluate(RECORD, {"neq": {"field": "Active", "value": 1}})


def test_in_and_nin() -> None:
    """Membership uses strict equality against the values list."""
    assert evaluate(RECORD, {"in": {"field": "Employees", "values": [100, 250]}})
    assert evaluate(RECORD, {"nin": {"field": "Employees", "values": ["250"]}})


def test_combinators() -> None:
    """all / any / not nest arbitrarily."""
    spec = {"all": [
        {"any": [
            {"equals": {"field": "Type", "value": "Partner"}},
            {"startsWith": {"field": "Name", "value": "Acme"}},
        ]},
        {"not": {"exists": "Parent"}},
    ]}
    assert evaluate(RECORD, spec)
    assert not evaluate(RECORD, {"any": [{"equals": {"field": "Type", "value": "Partner"}}]})


def test_length_predicate() -> None:
    """length counts list items or characters."""
    assert evaluate(RECORD, {"length": {"field": "Tags", "op": "eq", "value": 3}})
    assert evaluate(RECORD, {"length": {"field": "Name", "op": "gte", "value": 9}})
    assert evaluate(RECORD, {"length": {"field": "Parent", "op": "eq", "value": 0}})
    assert not evaluate(RECORD, {"length": {"field": "Name", "op": "between", "value": 9}})


def test_text_predicates_on_missing_field_are_false() -> None:
    """contains / startsWith / endsWith need a value."""
    assert not evaluate(RECORD, {"endsWith": {"field": "Nope", "value": ""}})


def test_invalid_regex_is_a_configuration_error() -> None:
    """A pattern that does not compile is reported, not ignored."""
    with pytest.raises(ConfigurationError):
        evaluate(RECORD, {"regex": {"field": "Name", "pattern": "("}})


def test_detect_kind_prefers_combinators() -> None:
    """Detection follows the fixed kind order and ignores falsy entries."""
    assert detect_kind({"all": [{"exists": "Name"}], "equals": {"field": "x"}}) == PredicateKind.ALL
    assert detect_kind({"exists": "", "missing": "Parent"}) == PredicateKind.MISSING
    assert detect_kind({"unknown": 1}) is None


def test_missing_predicate_keeps_only_records_without_parent() -> None:
    """Only the record without ParentExternalId survives."""
    records = [
        {"ExternalId": "p-1", "ParentExternalId": "root"},
        {"ExternalId": "p-2"},
    ]

    assert apply_filter(records, {"missing": "ParentExternalId"}) == [{"ExternalId": "p-2"}]


def test_empty_combinator_arguments_still_select_the_combinator() -> None:
    """An empty list or object is a present argument; any of nothing is false."""
    assert detect_kind({"any": []}) == PredicateKind.ANY
    assert detect_kind({"not": {}}) == PredicateKind.NOT
    assert evaluate(RECORD, {"any": []}) is False
    assert evaluate(RECORD, {"not": {}}) is False
    assert evaluate(RECORD, {"all": []}) is True
    assert detect_kind({"equals": 0, "neq": None, "in": False}) is None


def test_non_object_argument_names_no_field(caplog: pytest.LogCaptureFixture) -> None:
    """A bare string argument compares a missing field with a missing value."""
    with caplog.at_level(logging.DEBUG, logger="seedloader.services.filters"):
        assert evaluate(RECORD, {"equals": "Name"}) is True
    assert "expects an object" in caplog.text
    assert evaluate(RECORD, {"neq": "Name"}) is False
    assert evaluate(RECORD, {"gt": 5}) is False
    assert evaluate(RECORD, {"nin": ["Customer"]}) is True
