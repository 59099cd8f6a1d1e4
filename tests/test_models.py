"""Unit tests for run state, settings, reports, errors and mapping models."""

from datetime import datetime, timedelta, timezone

import pytest

from seedloader.context import IdentifierMapStore, RunContext
from seedloader.errors import ConfigurationError, DependencyCycleError, ResolutionError
from seedloader.models.mapping import (
    CommitApi,
    MappingConfig,
    OnMissing,
    OperationType,
    ReferenceEntry,
    StrategySpec,
)
from seedloader.models.pipeline import IdMapPolicy, PipelineConfig, RunStatus
from seedloader.models.record import RunReport, StepReport
from seedloader.settings import RunSettings, parse_bool


def test_identifier_maps_prefer_existing_by_default() -> None:
    """A business key keeps its first id unless the policy says otherwise."""
    store = IdentifierMapStore()

    assert store.merge("Account", {"acct-1": "001A", 7: "001N"}) == 2
    assert store.merge("Account", {"acct-1": "001B"}) == 0

    assert store.get("Account", "acct-1") == "001A"
    assert store.get("Account", "7") == "001N"
    assert store.get("Contact", "x") is None
    assert len(store) == 2


def test_identifier_maps_prefer_new() -> None:
    """prefer_new replaces ids written by earlier steps."""
    store = IdentifierMapStore(IdMapPolicy.PREFER_NEW)
    store.merge("Account", {"acct-1": "001A"})

    assert store.merge("Account", {"acct-1": "001B", "acct-2": "001C"}) == 2
    assert store.get("Account", "acct-1") == "001B"


def test_identifier_map_view_is_read_only() -> None:
    """Resolvers and generators only ever see a read-only view."""
    store = IdentifierMapStore()
    store.merge("Account", {"acct-1": "001A"})
    view = store.view()

    with pytest.raises(TypeError):
        view["Account"]["acct-2"] = "001B"
    with pytest.raises(TypeError):
        view["Lead"] = {}
    assert "Account" in store
    assert store.to_dict() == {"Account": {"acct-1": "001A"}}


def test_run_context_org_id_must_be_set_to_a_value() -> None:
    """The org id is set once known and never blanked."""
    context = RunContext(env="qa", dry_run=True)

    assert context.org_id is None
    context.org_id = " 00Dxx "
    assert context.org_id == "00Dxx"
    with pytest.raises(ValueError):
        context.org_id = ""


def test_parse_bool() -> None:
    """Only unambiguous boolean spellings are accepted."""
    assert parse_bool("DRY_RUN", "Yes") is True
    assert parse_bool("DRY_RUN", "0") is False
    assert parse_bool("DRY_RUN", None, default=True) is True
    with pytest.raises(ConfigurationError):
        parse_bool("DRY_RUN", "maybe")


def test_settings_from_env_and_overrides() -> None:
    """Environment variables feed settings; CLI overrides skip None values."""
    settings = RunSettings.from_env({
        "LOADER_ENV": "qa",
        "DRY_RUN": "true",
        "SEED_CONFIG_DIR": "/cfg",
        "SF_PASSWORD": "secret",
        "SF_ACCESS_TOKEN": "tok",
    })

    assert (settings.env, settings.dry_run, settings.config_dir) == ("qa", True, "/cfg")
    assert settings.api_version == "60.0"

    overridden = settings.with_overrides(env="prod", dry_run=None, report_dir="/reports")
    assert (overridden.env, overridden.dry_run, overridden.report_dir) == ("prod", True, "/reports")

    as_dict = settings.to_dict()
    assert as_dict["password"] == "***"
    assert as_dict["access_token"] == "***"
    assert "secret" not in str(as_dict)


def test_settings_env_falls_back_to_node_env() -> None:
    """NODE_ENV is honoured when LOADER_ENV is unset."""
    assert RunSettings.from_env({"NODE_ENV": "staging"}).env == "staging"
    assert RunSettings.from_env({}).env == "dev"


def test_run_report_totals_and_finalize() -> None:
    """Totals sum the steps; a finalized report is closed."""
    started = datetime(2024, 1, 1, tzinfo=timezone.utc)
    report = RunReport(env="qa", started_at=started)
    report.add_step(StepReport(entity_type="Account", data_source="a.json", attempted=3, ok=2, errors=1))
    report.add_step(StepReport(entity_type="Contact", data_source="c.json", attempted=1, ok=1))

    report.finalize(started + timedelta(seconds=2), RunStatus.COMPLETED)
    report.finalize(started + timedelta(seconds=9), RunStatus.FAILED)

    assert report.status == RunStatus.COMPLETED
    assert report.total_elapsed_ms == 2000
    assert report.to_dict()["totals"] == {"attempted": 4, "ok": 3, "errors": 1}
    assert report.to_dict()["fatalError"] is None
    with pytest.raises(RuntimeError):
        report.add_step(StepReport(entity_type="Lead", data_source="l.json"))


def test_error_rendering_and_context() -> None:
    """Errors render with entity and business key once known."""
    error = ResolutionError("Missing reference")

    assert str(error) == "Missing reference"
    error.with_context("Contact", "con-1").with_context("Account", "acct-1")
    assert str(error) == "[Contact:con-1] Missing reference"

    cycle = DependencyCycleError(["A", "B", "A"])
    assert cycle.message == "Dependency cycle between steps: A -> B -> A"
    assert isinstance(cycle, ConfigurationError)


def test_mapping_config_round_trips_through_to_dict() -> None:
    """to_dict produces the same keys the JSON files use."""
    mapping = MappingConfig.from_dict("Contact", {
        "identify": {"matchKey": "External_Id__c"},
        "shape": {"fieldMap": {"Key": "External_Id__c"}, "defaults": {"LeadSource": "Seed"}},
        "transform": {
            "pre": [{"op": "concat", "from": ["First", "Last"], "to": "Name", "separator": "-"}],
            "post": [{"op": "remove", "field": "AccountKey"}],
        },
        "references": [{"field": "AccountId", "refObject": "Account", "refKey": "AccountKey", "onMissing": "null"}],
        "validate": {"requiredFields": ["LastName"], "uniqueBy": ["External_Id__c"]},
        "strategy": {"operation": "UPSERT", "api": "composite", "externalIdField": "External_Id__c", "batchSize": 50},
    })

    assert mapping.references[0].on_missing == OnMissing.NULL
    assert mapping.strategy == StrategySpec(OperationType.UPSERT, CommitApi.COMPOSITE, "External_Id__c", 50)
    assert MappingConfig.from_dict("Contact", mapping.to_dict()) == mapping


def test_mapping_config_accepts_top_level_shape_keys() -> None:
    """Older configs keep fieldMap and defaults at the top level."""
    mapping = MappingConfig.from_dict("Account", {"fieldMap": {"a": "b"}, "defaults": {"c": 1}})

    assert mapping.shape.field_map == {"a": "b"}
    assert mapping.shape.defaults == {"c": 1}
    assert mapping.match_key is None


def test_invalid_strategy_values_are_configuration_errors() -> None:
    """Unknown operations and non-integer batch sizes are rejected."""
    with pytest.raises(ConfigurationError):
        MappingConfig.from_dict("Account", {"strategy": {"operation": "merge"}})
    with pytest.raises(ConfigurationError):
        MappingConfig.from_dict("Account", {"strategy": {"batchSize": "lots"}})
    with pytest.raises(ConfigurationError):
        StrategySpec(batch_size=0).check("Account")


def test_public_model_and_service_packages_import() -> None:
    """The package-level modules import and expose the mapping types."""
    import seedloader.models as models
    import seedloader.services as services

    op = models.TransformOp.from_dict({"op": "remove", "fields": ["Tmp"]})
    assert op.field is None
    assert op.source == []
    assert op.fields == ["Tmp"]
    assert models.ReferenceEntry(field="AccountId").ref_key == []
    assert services.evaluate({"Name": "Acme"}, {"exists": "Name"}) is True


def test_boolean_flags_in_json_accept_strings() -> None:
    """String booleans in mapping and pipeline files are parsed, not truth-tested."""
    entry = ReferenceEntry.from_dict({"field": "AccountId", "refKey": "AccountKey", "required": "false"})
    assert entry.required is False
    assert ReferenceEntry.from_dict({"field": "AccountId", "required": "yes"}).required is True
    with pytest.raises(ConfigurationError, match="AccountId.required"):
        ReferenceEntry.from_dict({"field": "AccountId", "required": "maybe"})

    config = PipelineConfig.from_dict({
        "steps": [{"object": "Account", "dataFile": "accounts.json"}],
        "dryRun": "false",
        "allowCycleFallback": "false",
    })
    assert config.dry_run is False
    assert config.allow_cycle_fallback is False
    assert PipelineConfig.from_dict({"steps": [], "allowCycleFallback": "true"}).allow_cycle_fallback is True
    with pytest.raises(ConfigurationError, match="dryRun"):
        PipelineConfig.from_dict({"steps": [], "dryRun": "perhaps"})
