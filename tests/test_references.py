"""Unit tests for reference resolution against identifier maps."""

import pytest

from seedloader.errors import ConfigurationError, ResolutionError
from seedloader.models.mapping import ReferenceEntry
from seedloader.services.references import (
    ReferenceResolver,
    infer_target_entity,
    parse_legacy_from,
    resolve_references,
)

MAPS = {
    "Account": {"acct-001": "001xx", "acct-002": "001yy"},
    "Product2": {"SKU-1|EU": "01tAA"},
    "Contact": {"con-001": "003aa"},
}


def _entry(**data) -> ReferenceEntry:
    return ReferenceEntry.from_dict(data)


def test_resolves_by_ref_key() -> None:
    """refKey reads the business key from the record."""
    record = {"AccountKey": "acct-001"}
    entry = _entry(field="AccountId", refObject="Account", refKey="AccountKey")

    assert resolve_references(record, [entry], MAPS)["AccountId"] == "001xx"


def test_ref_key_list_uses_first_non_empty_path() -> None:
    """With several refKey paths the first non-blank one wins."""
    record = {"Primary": "", "Fallback": "acct-002"}
    entry = _entry(field="AccountId", refObject="Account", refKey=["Primary", "Fallback"])

    assert resolve_references(record, [entry], MAPS)["AccountId"] == "001yy"


def test_resolves_by_key_template() -> None:
    """Composite keys are rendered from a template."""
    record = {"Sku": "SKU-1", "Region": "EU"}
    entry = _entry(field="Product2Id", refKeyTemplate="${Sku}|${Region}")

    assert resolve_references(record, [entry], MAPS, "PricebookEntry")["Product2Id"] == "01tAA"


def test_resolves_legacy_from_expression() -> None:
    """idMaps.<Entity>['${Key}'] names the target and the key at once."""
    record = {"AccountKey": "acct-002"}
    entry = _entry(field="Custom_Account__c", **{"from": "idMaps.Account['${AccountKey}']"})

    assert resolve_references(record, [entry], MAPS)["Custom_Account__c"] == "001yy"


def test_target_is_inferred_from_field_name() -> None:
    """<Thing>Id points at Thing, ParentId at the current entity."""
    assert infer_target_entity("AccountId", "Contact") == "Account"
    assert infer_target_entity("ParentId", "Contact") == "Contact"
    assert infer_target_entity("Parent_Product__c", "Product2") is None

    record = {"ParentKey": "con-001"}
    entry = _entry(field="ParentId", refKey="ParentKey")
    assert resolve_references(record, [entry], MAPS, "Contact")["ParentId"] == "003aa"


def test_uninferable_target_is_a_configuration_error() -> None:
    """A custom lookup without refObject cannot be resolved."""
    entry = _entry(field="Parent_Product__c", refKey="Key")

    with pytest.raises(ConfigurationError):
        resolve_references({"Key": "x"}, [entry], MAPS, "Product2")


def test_missing_identifier_raises_under_error_policy_regardless_of_required() -> None:
    """onMissing 'error' raises whether or not the reference is required."""
    record = {"AccountKey": "acct-404"}
    for required in (True, False):
        entry = _entry(field="AccountId", refObject="Account", refKey="AccountKey",
                       onMissing="error", required=required)
        with pytest.raises(ResolutionError):
            resolve_references(record, [entry], MAPS, "Contact")


def test_child_before_parent_step_raises() -> None:
    """A reference to an entity with no identifier map yet cannot resolve."""
    record = {"AccountKey": "acct-001"}
    entry = _entry(field="AccountId", refObject="Account", refKey="AccountKey")

    with pytest.raises(ResolutionError) as exc_info:
        resolve_references(record, [entry], {}, "Contact")

    assert "Account['acct-001']" in str(exc_info.value)


def test_null_and_skip_policies() -> None:
    """'null' writes None, 'skip' leaves the field untouched."""
    record = {"AccountKey": "acct-404", "AccountId": "keep-me"}

    nulled = resolve_references(
        record, [_entry(field="AccountId", refObject="Account", refKey="AccountKey", onMissing="null")], MAPS
    )
    skipped = resolve_references(
        record, [_entry(field="AccountId", refObject="Account", refKey="AccountKey", onMissing="skip")], MAPS
    )

    assert nulled["AccountId"] is None
    assert skipped["AccountId"] == "keep-me"


def test_required_overrides_lenient_policy() -> None:
    """A required reference raises even when onMissing is 'null'."""
    entry = _entry(field="AccountId", refObject="Account", refKey="AccountKey",
                   onMissing="null", required=True)

    with pytest.raises(ResolutionError):
        resolve_references({}, [entry], MAPS)


def test_resolution_is_idempotent_and_does_not_mutate() -> None:
    """Resolving twice gives the same record; the input is untouched."""
    record = {"AccountKey": "acct-001"}
    entries = [_entry(field="AccountId", refObject="Account", refKey="AccountKey")]
    resolver = ReferenceResolver(MAPS, "Contact")

    once = resolver.resolve_all(record, entries)
    twice = resolver.resolve_all(once, entries)

    assert once == twice == {"AccountKey": "acct-001", "AccountId": "001xx"}
    assert record == {"AccountKey": "acct-001"}


def test_numeric_keys_are_stringified() -> None:
    """Business keys are compared as text."""
    maps = {"Account": {"42": "001zz"}}
    entry = _entry(field="AccountId", refObject="Account", refKey="Number")

    assert resolve_references({"Number": 42}, [entry], maps)["AccountId"] == "001zz"


def test_invalid_on_missing_is_rejected() -> None:
    """Only error, null and skip are policies."""
    with pytest.raises(ConfigurationError):
        _entry(field="AccountId", refKey="AccountKey", onMissing="ignore")


def test_parse_legacy_from() -> None:
    """Unrecognised expressions parse to None."""
    assert parse_legacy_from("idMaps.Account['${Key}']", {"Key": "k1"}) == ("Account", "k1")
    assert parse_legacy_from("idMaps.Account[\"fixed\"]", {}) == ("Account", "fixed")
    assert parse_legacy_from("lookup(Account)", {}) is None


def test_later_entries_see_ids_resolved_by_earlier_entries() -> None:
    """Entries resolve in order, each against the record as resolved so far."""
    maps = {"Account": {"a1": "001A"}, "Link": {"001A": "L1"}}
    entries = [
        _entry(field="AccountId", refObject="Account", refKey="AcctKey"),
        _entry(field="Rel__c", refObject="Link", refKeyTemplate="${AccountId}", onMissing="null"),
    ]

    resolved = resolve_references({"AcctKey": "a1"}, entries, maps, "Contact")

    assert resolved == {"AcctKey": "a1", "AccountId": "001A", "Rel__c": "L1"}
