"""Shared fixtures and fake collaborators for the seed loader tests."""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from seedloader.loaders.base import BaseCommitter
from seedloader.models.mapping import StrategySpec
from seedloader.models.record import CommitResponse, CommitRow
from seedloader.settings import RunSettings


def write_json(path: Path, data: Any) -> Path:
    """Write data as JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class FakeCommitter(BaseCommitter):
    """Commit collaborator that hands out ids without touching a network."""

    def __init__(
        self,
        ids: Optional[Dict[str, List[str]]] = None,
        respond: Optional[Callable[[str, List[Dict[str, Any]], StrategySpec], CommitResponse]] = None
    ):
        self.ids = {k: list(v) for k, v in (ids or {}).items()}
        self.respond = respond
        self.calls: List[Dict[str, Any]] = []

    def commit(self, connection, entity_type, batch, strategy):
        self.calls.append({"entity_type": entity_type, "batch": [dict(r) for r in batch]})
        if self.respond is not None:
            return self.respond(entity_type, batch, strategy)

        pool = self.ids.setdefault(entity_type, [])
        rows = []
        for index, record in enumerate(batch):
            record_id = pool.pop(0) if pool else f"{entity_type[:3].upper()}{len(self.calls):03d}{index:03d}"
            rows.append(CommitRow(
                success=True,
                id=record_id,
                created=True,
                index=index,
                external_id=self.external_id_of(record, strategy),
            ))
        return CommitResponse(rows=rows)


@pytest.fixture
def seed_project(tmp_path: Path) -> Dict[str, Path]:
    """A config directory and data root with an Account -> Contact pipeline."""
    config_dir = tmp_path / "config"
    data_root = tmp_path / "data"

    write_json(config_dir / "pipeline.json", {
        "steps": [
            {"object": "Contact", "dataFile": "contacts.json", "dependsOn": ["Account"]},
            {"object": "Account", "dataFile": "accounts.json", "dataKey": "accounts"},
        ],
    })
    write_json(config_dir / "constants.json", {"Region": "EMEA"})
    write_json(config_dir / "base" / "Account.json", {
        "identify": {"matchKey": "External_Id__c"},
        "shape": {
            "fieldMap": {"ExternalKey": "External_Id__c"},
            "defaults": {"Region__c": "${constants.Region}"},
        },
        "validate": {"requiredFields": ["Name"], "uniqueBy": ["External_Id__c"]},
    })
    write_json(config_dir / "base" / "Contact.json", {
        "identify": {"matchKey": "External_Id__c"},
        "shape": {"fieldMap": {"Key": "External_Id__c"}},
        "transform": {"post": [{"op": "remove", "field": "AccountKey"}]},
        "references": [
            {"field": "AccountId", "refObject": "Account", "refKey": "AccountKey", "onMissing": "error"},
        ],
    })
    write_json(data_root / "accounts.json", {
        "accounts": [
            {"ExternalKey": "acct-001", "Name": "Acme"},
            {"ExternalKey": "acct-002", "Name": "Globex"},
        ],
    })
    write_json(data_root / "contacts.json", [
        {"Key": "con-001", "LastName": "Smith", "AccountKey": "acct-001"},
        {"Key": "con-002", "LastName": "Jones", "AccountKey": "acct-002"},
    ])

    return {"config_dir": config_dir, "data_root": data_root, "meta_dir": tmp_path / "meta"}


@pytest.fixture
def seed_settings(seed_project: Dict[str, Path]) -> RunSettings:
    return RunSettings(
        env="dev",
        config_dir=str(seed_project["config_dir"]),
        data_root=str(seed_project["data_root"]),
        meta_dir=str(seed_project["meta_dir"]),
    )
