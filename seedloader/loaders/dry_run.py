"""Dry-run committer: nothing is written, ids are fabricated."""

import hashlib
import json
import logging
from typing import Any, Dict, List

from .base import BaseCommitter
from ..models.mapping import OperationType, StrategySpec
from ..models.record import CommitResponse, CommitRow

logger = logging.getLogger(__name__)

PREVIEW_SIZE = 3


def fake_id(entity_type: str, record: Dict[str, Any]) -> str:
    """Deterministic 18-character id for a record, stable across runs."""
    digest = hashlib.sha1(
        f"{entity_type}:{json.dumps(record, sort_keys=True, default=str)}".encode("utf-8")
    ).hexdigest()
    return f"DRY{digest[:15]}"


class DryRunCommitter(BaseCommitter):
    """
    Pretends every record committed successfully.

    The fabricated ids let later steps resolve references to records that
    were never written, so a dry run exercises the whole pipeline.
    """

    def __init__(self, preview_size: int = PREVIEW_SIZE):
        self.preview_size = preview_size
        self.committed: Dict[str, List[Dict[str, Any]]] = {}

    def commit(
        self,
        connection: Any,
        entity_type: str,
        batch: List[Dict[str, Any]],
        strategy: StrategySpec
    ) -> CommitResponse:
        """Record the batch and report success for every record."""
        seen = self.committed.setdefault(entity_type, [])
        if len(seen) < self.preview_size:
            preview = batch[:self.preview_size - len(seen)]
            logger.info(f"DRY RUN preview ({entity_type}): {json.dumps(preview, indent=2, default=str)}")
        seen.extend(batch)

        rows = []
        for index, record in enumerate(batch):
            if strategy.operation == OperationType.UPDATE and record.get("Id"):
                record_id = str(record["Id"])
            else:
                record_id = fake_id(entity_type, record)
            rows.append(CommitRow(
                success=True,
                id=record_id,
                created=strategy.operation != OperationType.UPDATE,
                index=index,
                external_id=self.external_id_of(record, strategy),
            ))
        return CommitResponse(rows=rows)
