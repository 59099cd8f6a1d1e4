"""REST committers: one call per record, or grouped sObject collection calls."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .base import BaseCommitter
from .connection import PlatformConnection, error_messages
from ..errors import CommitError
from ..models.mapping import OperationType, StrategySpec
from ..models.record import CommitResponse, CommitRow
from ..utils import chunk

logger = logging.getLogger(__name__)

COLLECTION_LIMIT = 200
QUERY_CHUNK = 100


def soql_quote(value: str) -> str:
    """Quote a string literal for a SOQL WHERE clause."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _row_errors(entry: Dict[str, Any]) -> List[str]:
    messages = []
    for error in entry.get("errors") or []:
        if isinstance(error, dict):
            code = error.get("statusCode") or error.get("errorCode")
            message = error.get("message", "")
            fields = error.get("fields")
            text = f"{code}: {message}" if code else message
            if fields:
                text += f" ({', '.join(fields)})"
            messages.append(text)
        else:
            messages.append(str(error))
    return messages


class RestCommitter(BaseCommitter):
    """
    Commits records one REST call at a time.

    A rejected record becomes a failed row and the batch carries on. After an
    upsert, ids the platform did not return for updated records are looked
    up by external id.
    """

    def commit(
        self,
        connection: PlatformConnection,
        entity_type: str,
        batch: List[Dict[str, Any]],
        strategy: StrategySpec
    ) -> CommitResponse:
        """Commit each record of the batch with its own call."""
        connection = self.require_connection(connection, entity_type)
        rows = []
        for index, record in enumerate(batch):
            external_id = self.external_id_of(record, strategy)
            try:
                rows.append(self._commit_one(connection, entity_type, record, strategy, index, external_id))
            except CommitError as e:
                logger.debug(f"{entity_type} record #{index} rejected: {e}")
                rows.append(self.failed_row(index, e.errors, external_id))

        if self.is_upsert(strategy):
            rows = self._fill_missing_ids(connection, entity_type, rows, strategy)

        return CommitResponse(rows=rows)

    def _commit_one(
        self,
        connection: PlatformConnection,
        entity_type: str,
        record: Dict[str, Any],
        strategy: StrategySpec,
        index: int,
        external_id: Optional[str]
    ) -> CommitRow:
        if strategy.operation == OperationType.INSERT:
            response = connection.request("POST", f"sobjects/{entity_type}", json=record)
            body = self._check(response, entity_type)
            return CommitRow(success=True, id=body.get("id"), created=True, index=index)

        if strategy.operation == OperationType.UPDATE:
            record_id = self.record_id_of(record, entity_type)
            payload = {k: v for k, v in record.items() if k != "Id"}
            response = connection.request("PATCH", f"sobjects/{entity_type}/{record_id}", json=payload)
            self._check(response, entity_type)
            return CommitRow(success=True, id=record_id, created=False, index=index)

        if external_id is None:
            raise CommitError(
                f"Upsert requires a value for {strategy.external_id_field}", entity_type=entity_type
            )
        payload = {k: v for k, v in record.items() if k != strategy.external_id_field}
        path = f"sobjects/{entity_type}/{strategy.external_id_field}/{quote(external_id, safe='')}"
        response = connection.request("PATCH", path, json=payload)
        body = self._check(response, entity_type)
        created = response.status_code == 201 or bool(body.get("created"))
        return CommitRow(
            success=True,
            id=body.get("id"),
            created=created,
            index=index,
            external_id=external_id,
        )

    @staticmethod
    def _check(response: Any, entity_type: str) -> Dict[str, Any]:
        if response.status_code >= 400:
            raise CommitError(
                f"{entity_type} write rejected ({response.status_code})",
                errors=error_messages(response),
                entity_type=entity_type,
            )
        if not response.content:
            return {}
        body = response.json()
        return body if isinstance(body, dict) else {}

    def _fill_missing_ids(
        self,
        connection: PlatformConnection,
        entity_type: str,
        rows: List[CommitRow],
        strategy: StrategySpec
    ) -> List[CommitRow]:
        """Look up ids of successfully upserted rows the platform returned without one."""
        wanted = [r.external_id for r in rows if r.success and not r.id and r.external_id]
        if not wanted:
            return rows

        field_name = strategy.external_id_field
        found: Dict[str, str] = {}
        for values in chunk(sorted(set(wanted)), QUERY_CHUNK):
            soql = (
                f"SELECT Id, {field_name} FROM {entity_type} "
                f"WHERE {field_name} IN ({', '.join(soql_quote(v) for v in values)})"
            )
            for record in connection.query(soql):
                found[str(record.get(field_name))] = record.get("Id")

        logger.debug(f"{entity_type}: resolved {len(found)}/{len(wanted)} updated ids by {field_name}")
        return [
            CommitRow(
                success=r.success,
                id=found.get(r.external_id),
                created=r.created,
                index=r.index,
                external_id=r.external_id,
                errors=r.errors,
            ) if r.success and not r.id and r.external_id else r
            for r in rows
        ]


class CompositeCommitter(BaseCommitter):
    """
    Commits records through sObject collection calls of up to 200 records.

    Collections answer in submission order, so each result is tagged with
    its position. A collection call rejected as a whole fails every record
    it carried; other collections of the batch still go through.
    """

    def commit(
        self,
        connection: PlatformConnection,
        entity_type: str,
        batch: List[Dict[str, Any]],
        strategy: StrategySpec
    ) -> CommitResponse:
        """Commit the batch as one or more sObject collections."""
        connection = self.require_connection(connection, entity_type)
        rows: List[CommitRow] = []
        for offset in range(0, len(batch), COLLECTION_LIMIT):
            part = batch[offset:offset + COLLECTION_LIMIT]
            rows.extend(self._commit_collection(connection, entity_type, part, strategy, offset))
        return CommitResponse(rows=rows)

    def _commit_collection(
        self,
        connection: PlatformConnection,
        entity_type: str,
        part: List[Dict[str, Any]],
        strategy: StrategySpec,
        offset: int
    ) -> List[CommitRow]:
        payload = {
            "allOrNone": False,
            "records": [dict(record, attributes={"type": entity_type}) for record in part],
        }

        if strategy.operation == OperationType.INSERT:
            response = connection.request("POST", "composite/sobjects", json=payload)
        elif strategy.operation == OperationType.UPDATE:
            response = connection.request("PATCH", "composite/sobjects", json=payload)
        else:
            path = f"composite/sobjects/{entity_type}/{strategy.external_id_field}"
            response = connection.request("PATCH", path, json=payload)

        external_ids = [self.external_id_of(record, strategy) for record in part]

        if response.status_code >= 400:
            messages = error_messages(response)
            logger.warning(f"{entity_type} collection of {len(part)} rejected: {'; '.join(messages)}")
            return [
                self.failed_row(offset + i, messages, external_ids[i]) for i in range(len(part))
            ]

        results = response.json() or []
        rows = []
        for i, entry in enumerate(results):
            if i >= len(part):
                break
            success = bool(entry.get("success"))
            if strategy.operation == OperationType.INSERT:
                created = True
            elif strategy.operation == OperationType.UPDATE:
                created = False
            else:
                created = bool(entry.get("created"))
            rows.append(CommitRow(
                success=success,
                id=entry.get("id") or (part[i].get("Id") if strategy.operation == OperationType.UPDATE else None),
                created=created,
                index=offset + i,
                external_id=external_ids[i],
                errors=_row_errors(entry),
            ))
        return rows
