"""Bulk ingest committer and the job poller it waits on."""

import csv
import io
import json
import logging
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import BaseCommitter
from .connection import PlatformConnection, error_messages
from ..errors import TransportError
from ..models.mapping import OperationType, StrategySpec
from ..models.record import CommitResponse, CommitRow
from ..utils import stringify

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    """Poller states."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# Platform job states -> poller states
PLATFORM_JOB_STATES = {
    "Open": JobState.PENDING,
    "UploadComplete": JobState.PENDING,
    "InProgress": JobState.PENDING,
    "JobComplete": JobState.SUCCEEDED,
    "Failed": JobState.FAILED,
    "Aborted": JobState.FAILED,
}


class BulkJobPoller:
    """
    Waits for an asynchronous job to finish.

    PENDING moves to SUCCEEDED or FAILED according to the platform's job
    state, or to TIMED_OUT once the deadline passes. Every terminal state is
    final. Clock and sleep are injectable so tests never wait.
    """

    def __init__(
        self,
        timeout: float = 600.0,
        interval: float = 2.0,
        max_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.timeout = timeout
        self.interval = interval
        self.max_interval = max_interval
        self.clock = clock
        self.sleep = sleep
        self.state = JobState.PENDING
        self.history: List[JobState] = [JobState.PENDING]

    @staticmethod
    def classify(platform_state: Optional[str]) -> JobState:
        if platform_state not in PLATFORM_JOB_STATES:
            raise TransportError(f"Unexpected bulk job state '{platform_state}'")
        return PLATFORM_JOB_STATES[platform_state]

    def _transition(self, new_state: JobState) -> None:
        if self.state != JobState.PENDING:
            raise RuntimeError(f"Job poller already finished in state {self.state.value}")
        if new_state != self.state:
            self.state = new_state
            self.history.append(new_state)

    def wait(self, fetch: Callable[[], Dict[str, Any]]) -> Tuple[JobState, Dict[str, Any]]:
        """
        Poll until the job leaves PENDING or the deadline passes.

        Args:
            fetch: Returns the job's current info (with a ``state`` key)

        Returns:
            Final poller state and the last job info seen
        """
        deadline = self.clock() + self.timeout
        delay = self.interval
        info: Dict[str, Any] = {}

        while self.state == JobState.PENDING:
            info = fetch() or {}
            self._transition(self.classify(info.get("state")))
            if self.state != JobState.PENDING:
                break

            remaining = deadline - self.clock()
            if remaining <= 0:
                self._transition(JobState.TIMED_OUT)
                break

            self.sleep(min(delay, remaining))
            delay = min(delay * 2, self.max_interval)

        return self.state, info


def _csv_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return stringify(value)


class BulkCommitter(BaseCommitter):
    """
    Commits a batch as one bulk ingest job (CSV upload, then poll).

    Bulk results come back in no particular order, so every result row is
    matched to its submitted record by the record's own column values.
    """

    def __init__(self, poller_factory: Callable[[], BulkJobPoller] = BulkJobPoller):
        self.poller_factory = poller_factory

    def commit(
        self,
        connection: PlatformConnection,
        entity_type: str,
        batch: List[Dict[str, Any]],
        strategy: StrategySpec
    ) -> CommitResponse:
        """Upload the batch as an ingest job and collect its results."""
        connection = self.require_connection(connection, entity_type)
        if not batch:
            return CommitResponse()

        columns = self._columns(batch)
        content, row_keys = self._to_csv(batch, columns)

        job = {
            "object": entity_type,
            "operation": strategy.operation.value,
            "contentType": "CSV",
            "lineEnding": "LF",
        }
        if strategy.operation == OperationType.UPSERT:
            job["externalIdFieldName"] = strategy.external_id_field

        job_id = connection.request_json("POST", "jobs/ingest", json=job)["id"]
        logger.info(f"{entity_type}: bulk job {job_id} created for {len(batch)} records")

        upload = connection.request(
            "PUT",
            f"jobs/ingest/{job_id}/batches",
            data=content.encode("utf-8"),
            headers={"Content-Type": "text/csv"},
        )
        if upload.status_code >= 400:
            raise TransportError(
                f"Bulk upload for job {job_id} failed: {'; '.join(error_messages(upload))}",
                entity_type=entity_type,
            )
        connection.request_json("PATCH", f"jobs/ingest/{job_id}", json={"state": "UploadComplete"})

        poller = self.poller_factory()
        state, info = poller.wait(lambda: connection.request_json("GET", f"jobs/ingest/{job_id}"))

        if state == JobState.TIMED_OUT:
            connection.request("PATCH", f"jobs/ingest/{job_id}", json={"state": "Aborted"})
            raise TransportError(f"Bulk job {job_id} did not finish in time", entity_type=entity_type)
        if state == JobState.FAILED:
            raise TransportError(
                f"Bulk job {job_id} {info.get('state', 'failed')}: {info.get('errorMessage', 'no details')}",
                entity_type=entity_type,
            )

        logger.info(
            f"{entity_type}: bulk job {job_id} complete "
            f"(processed={info.get('numberRecordsProcessed')}, failed={info.get('numberRecordsFailed')})"
        )

        rows = []
        positions = self._positions(row_keys)
        for result in self._results(connection, job_id, "successfulResults"):
            rows.append(self._result_row(result, columns, positions, batch, strategy, success=True))
        for result in self._results(connection, job_id, "failedResults"):
            rows.append(self._result_row(result, columns, positions, batch, strategy, success=False))

        return CommitResponse(rows=rows)

    @staticmethod
    def _columns(batch: List[Dict[str, Any]]) -> List[str]:
        columns: List[str] = []
        for record in batch:
            for key in record:
                if key not in columns:
                    columns.append(key)
        return columns

    @staticmethod
    def _to_csv(batch: List[Dict[str, Any]], columns: List[str]) -> Tuple[str, List[Tuple[str, ...]]]:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(columns)
        keys = []
        for record in batch:
            values = tuple(_csv_value(record.get(c)) for c in columns)
            writer.writerow(values)
            keys.append(values)
        return buffer.getvalue(), keys

    @staticmethod
    def _positions(row_keys: List[Tuple[str, ...]]) -> Dict[Tuple[str, ...], List[int]]:
        positions: Dict[Tuple[str, ...], List[int]] = {}
        for index, key in enumerate(row_keys):
            positions.setdefault(key, []).append(index)
        return positions

    @staticmethod
    def _results(connection: PlatformConnection, job_id: str, kind: str) -> List[Dict[str, str]]:
        response = connection.request("GET", f"jobs/ingest/{job_id}/{kind}")
        if response.status_code >= 400:
            raise TransportError(f"Fetching {kind} of bulk job {job_id} failed: {'; '.join(error_messages(response))}")
        return list(csv.DictReader(io.StringIO(response.text)))

    def _result_row(
        self,
        result: Dict[str, str],
        columns: List[str],
        positions: Dict[Tuple[str, ...], List[int]],
        batch: List[Dict[str, Any]],
        strategy: StrategySpec,
        success: bool
    ) -> CommitRow:
        key = tuple(result.get(c, "") for c in columns)
        candidates = positions.get(key) or []
        # -1 marks a result that matches no submitted record
        index = candidates.pop(0) if candidates else -1
        external_id = self.external_id_of(batch[index], strategy) if index >= 0 else None

        if success:
            return CommitRow(
                success=True,
                id=result.get("sf__Id") or None,
                created=(result.get("sf__Created", "").lower() == "true"),
                index=index,
                external_id=external_id,
            )
        return CommitRow(
            success=False,
            index=index,
            external_id=external_id,
            errors=[result.get("sf__Error") or "Unknown bulk error"],
        )
