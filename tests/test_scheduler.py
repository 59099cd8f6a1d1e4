"""Unit tests for dependency ordering of pipeline steps."""

import logging

import pytest

from seedloader.errors import DependencyCycleError
from seedloader.models.pipeline import Step
from seedloader.services.scheduler import order_steps


def _step(entity_type: str, *depends_on: str, data_source: str = "") -> Step:
    return Step(
        entity_type=entity_type,
        data_source=data_source or f"{entity_type.lower()}.json",
        depends_on=frozenset(depends_on),
    )


def _names(steps):
    return [s.entity_type for s in steps]


def test_dependencies_run_before_dependents() -> None:
    """Every producer precedes every consumer of its entity type."""
    steps = [
        _step("OpportunityLineItem", "Opportunity", "PricebookEntry"),
        _step("Opportunity", "Account"),
        _step("PricebookEntry", "Product2"),
        _step("Account"),
        _step("Product2"),
    ]

    ordered = order_steps(steps)
    position = {s.entity_type: i for i, s in enumerate(ordered)}

    for step in steps:
        for dependency in step.depends_on:
            assert position[dependency] < position[step.entity_type]
    assert sorted(_names(ordered)) == sorted(_names(steps))


def test_ties_keep_declaration_order() -> None:
    """Independent steps run in the order they were declared."""
    steps = [_step("Contact", "Account"), _step("Product2"), _step("Account")]

    assert _names(order_steps(steps)) == ["Product2", "Account", "Contact"]


def test_all_producers_of_a_type_run_first() -> None:
    """Two steps loading the same type both precede its consumers."""
    steps = [
        _step("Contact", "Account"),
        _step("Account", data_source="accounts-a.json"),
        _step("Account", data_source="accounts-b.json"),
    ]

    ordered = order_steps(steps)

    assert [s.data_source for s in ordered] == ["accounts-a.json", "accounts-b.json", "contact.json"]


def test_self_dependency_is_ignored() -> None:
    """A hierarchy step depending on its own type does not deadlock."""
    steps = [_step("Account", "Account")]

    assert _names(order_steps(steps)) == ["Account"]


def test_unknown_dependency_is_ignored_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    """Depending on a type nobody loads only warns."""
    with caplog.at_level(logging.WARNING):
        ordered = order_steps([_step("Contact", "Account")])

    assert _names(ordered) == ["Contact"]
    assert "no step produces" in caplog.text


def test_cycle_raises_and_names_the_cycle() -> None:
    """A cycle is an error listing the steps involved."""
    steps = [_step("Product2"), _step("A", "B"), _step("B", "A")]

    with pytest.raises(DependencyCycleError) as exc_info:
        order_steps(steps)

    assert exc_info.value.cycle in (["A", "B", "A"], ["B", "A", "B"])
    assert "A -> B" in str(exc_info.value) or "B -> A" in str(exc_info.value)


def test_cycle_fallback_returns_declaration_order(caplog: pytest.LogCaptureFixture) -> None:
    """With the fallback on, a cycle only warns."""
    steps = [_step("A", "B"), _step("B", "A")]

    with caplog.at_level(logging.WARNING):
        ordered = order_steps(steps, allow_cycle_fallback=True)

    assert ordered == steps
    assert "falling back" in caplog.text
