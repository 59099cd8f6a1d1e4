"""Metadata catalog backed by field-description snapshot files."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ..errors import SchemaError
from ..models.describe import EntityDescribe
from ..models.mapping import OperationType
from ..models.pipeline import Step
from ..utils import read_json

logger = logging.getLogger(__name__)

# Always sent when present, whatever the describe says about writability
ALWAYS_KEPT_FIELDS = {"Id"}


class SnapshotCatalog:
    """
    Catalog of entity describes stored as ``<meta_dir>/<org_id>/<Entity>.json``.

    Supports:
    - Fetching and saving missing snapshots through a platform connection
    - Pruning fields the target cannot accept
    - Schema checks on a working set before commit
    - Match key validation across a whole pipeline
    """

    def __init__(
        self,
        meta_dir: str = "./meta-data",
        org_id: Optional[str] = None,
        connection: Any = None,
        refresh: bool = False
    ):
        """
        Initialize the catalog.

        Args:
            meta_dir: Root directory of describe snapshots
            org_id: Org whose snapshots to use (defaults to the connection's)
            connection: Platform connection used to fetch missing snapshots
            refresh: Re-fetch snapshots even when a file exists
        """
        self.meta_dir = Path(meta_dir)
        self.connection = connection
        self.refresh = refresh
        self._org_id = org_id
        self._describes: Dict[str, Optional[EntityDescribe]] = {}
        self._refreshed: Set[str] = set()

    @property
    def org_id(self) -> Optional[str]:
        if self._org_id:
            return self._org_id
        return getattr(self.connection, "org_id", None)

    def snapshot_path(self, entity_type: str) -> Path:
        base = self.meta_dir / self.org_id if self.org_id else self.meta_dir
        return base / f"{entity_type}.json"

    def ensure_available(self, entity_type: str) -> bool:
        """
        Make sure a snapshot exists for the entity type.

        Returns:
            True if a snapshot is available afterwards
        """
        path = self.snapshot_path(entity_type)
        wants_refresh = self.refresh and entity_type not in self._refreshed

        if path.exists() and not wants_refresh:
            return True

        if self.connection is None:
            if not path.exists():
                logger.warning(f"No describe snapshot for {entity_type} at {path} and no connection to fetch one")
            return path.exists()

        logger.info(f"Fetching describe for {entity_type}")
        data = self.connection.describe(entity_type)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        self._refreshed.add(entity_type)
        self._describes.pop(entity_type, None)
        logger.info(f"Saved describe snapshot for {entity_type} to {path}")
        return True

    def describe(self, entity_type: str) -> Optional[EntityDescribe]:
        """Return the entity's describe, or None if no snapshot is available."""
        if entity_type not in self._describes:
            if self.ensure_available(entity_type):
                data = read_json(self.snapshot_path(entity_type))
                if not isinstance(data, dict):
                    raise SchemaError(
                        f"Describe snapshot {self.snapshot_path(entity_type)} is not an object",
                        entity_type=entity_type,
                    )
                self._describes[entity_type] = EntityDescribe.from_dict(data, name=entity_type)
            else:
                self._describes[entity_type] = None
        return self._describes[entity_type]

    def prune_fields(
        self,
        entity_type: str,
        records: List[Dict[str, Any]],
        describe: Optional[EntityDescribe],
        operation: OperationType
    ) -> List[Dict[str, Any]]:
        """
        Drop fields the target entity does not have or will not accept.

        Returns:
            New records; input records are untouched
        """
        if describe is None:
            logger.debug(f"{entity_type}: no describe snapshot, fields not pruned")
            return [dict(r) for r in records]

        pruned: Set[str] = set()
        result = []
        for record in records:
            kept = {}
            for field_name, value in record.items():
                info = describe.get_field(field_name)
                if field_name in ALWAYS_KEPT_FIELDS or (info and info.writable_for(operation.value)):
                    kept[field_name] = value
                else:
                    pruned.add(field_name)
            result.append(kept)

        if pruned:
            logger.info(f"{entity_type}: pruned fields not writable for {operation.value}: {sorted(pruned)}")
        return result

    def validate_batch(
        self,
        entity_type: str,
        records: List[Dict[str, Any]],
        describe: Optional[EntityDescribe],
        operation: OperationType
    ) -> None:
        """
        Check the working set against the describe.

        Raises:
            SchemaError: If an insert lacks a field the platform requires
        """
        if describe is None or operation != OperationType.INSERT:
            return

        required = [f.name for f in describe.fields.values() if f.required_on_create]
        for index, record in enumerate(records):
            missing = [name for name in required if record.get(name) is None]
            if missing:
                raise SchemaError(
                    f"Record #{index} is missing fields required on create: {', '.join(missing)}",
                    entity_type=entity_type,
                )

    def validate_match_keys(self, steps: List[Step], provider: Any) -> None:
        """
        Check that every step's match key is a field of its entity.

        Args:
            steps: Steps of the run
            provider: Mapping config provider (``load_step_config(step)``)

        Raises:
            SchemaError: Listing every match key that is not a field
        """
        logger.info("Validating match keys against describe snapshots")
        errors = []

        for step in steps:
            mapping = provider.load_step_config(step)
            match_key = mapping.match_key
            if not match_key:
                logger.warning(f"{step.entity_type}: no identify.matchKey defined")
                continue

            describe = self.describe(step.entity_type)
            if describe is None:
                logger.warning(f"{step.entity_type}: no snapshot, match key '{match_key}' not checked")
                continue

            if not describe.has_field(match_key):
                logger.error(f"{step.entity_type}: match key '{match_key}' is not a field")
                errors.append(f"{step.entity_type}.{match_key}")

        if errors:
            raise SchemaError(f"Match keys not found on their entities: {', '.join(errors)}")

        logger.info("All match keys exist")
