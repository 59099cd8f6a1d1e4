"""Batch commit reconciliation: map platform results back onto submitted records."""

import logging
from typing import Any, Dict, List, Optional

from ..errors import CommitError, TransportError
from ..models.mapping import OperationType, StrategySpec
from ..models.record import BatchResult, CommitFailure, CommitOutcome, CommitResponse, CommitRow
from ..utils import chunk, get_by_path, is_empty, stringify

logger = logging.getLogger(__name__)

NO_RESULT_MESSAGE = "No result reported by the platform for this record"
NO_ID_MESSAGE = "Platform reported success without a record id"


class BatchCommitReconciler:
    """
    Commits a step's records in sequential batches and reconciles the results.

    For every batch the number of created, updated and failed records adds
    up to the number submitted, no matter what the commit collaborator
    reports back.
    """

    def __init__(self, committer: Any, connection: Any = None):
        """
        Initialize the reconciler.

        Args:
            committer: Commit collaborator with
                ``commit(connection, entity_type, batch, strategy) -> CommitResponse``
            connection: Platform connection handed through to the committer
        """
        self.committer = committer
        self.connection = connection

    def commit(
        self,
        entity_type: str,
        records: List[Dict[str, Any]],
        strategy: StrategySpec,
        match_key: str
    ) -> BatchResult:
        """
        Commit all records and reconcile the platform's answers.

        Args:
            entity_type: Target entity type
            records: Working set (every record carries its match key)
            strategy: Commit strategy of the step
            match_key: Field holding each record's business key

        Returns:
            BatchResult with created / updated / failed records

        Raises:
            ConfigurationError: If the strategy cannot be committed
            TransportError: If a whole commit call fails
        """
        strategy.check(entity_type)

        result = BatchResult()
        batches = chunk(records, strategy.batch_size)
        for batch_no, batch in enumerate(batches, start=1):
            offset = (batch_no - 1) * strategy.batch_size
            logger.info(
                f"Committing {entity_type} batch {batch_no}/{len(batches)} "
                f"({len(batch)} records, {strategy.operation.value} via {strategy.api.value})"
            )
            response = self._commit_batch(entity_type, batch, strategy)
            batch_result = self.reconcile(entity_type, batch, response, strategy, match_key, offset)
            result.extend(batch_result)

        return result

    def _commit_batch(
        self,
        entity_type: str,
        batch: List[Dict[str, Any]],
        strategy: StrategySpec
    ) -> CommitResponse:
        try:
            response = self.committer.commit(self.connection, entity_type, batch, strategy)
        except CommitError as e:
            logger.warning(f"{entity_type} batch rejected: {e}")
            return CommitResponse(rows=[
                CommitRow(success=False, index=i, errors=list(e.errors)) for i in range(len(batch))
            ])
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(f"Commit call failed: {e}", entity_type=entity_type) from e

        if not isinstance(response, CommitResponse):
            raise TransportError(
                f"Commit collaborator returned {type(response).__name__}, expected CommitResponse",
                entity_type=entity_type,
            )
        return response

    def reconcile(
        self,
        entity_type: str,
        batch: List[Dict[str, Any]],
        response: CommitResponse,
        strategy: StrategySpec,
        match_key: str,
        offset: int = 0
    ) -> BatchResult:
        """Place each reported row on its submitted record and classify the outcome."""
        keys = [stringify(get_by_path(record, match_key)) for record in batch]
        placed: Dict[int, CommitRow] = {}

        external_ids: Dict[str, List[int]] = {}
        if strategy.external_id_field:
            for i, record in enumerate(batch):
                value = get_by_path(record, strategy.external_id_field)
                if not is_empty(value):
                    external_ids.setdefault(stringify(value), []).append(i)

        for position, row in enumerate(response.rows):
            target = self._place(row, position, len(batch), external_ids, placed, strategy)
            if target is None:
                logger.warning(f"{entity_type}: ignoring commit result that matches no submitted record: {row.to_dict()}")
                continue
            if target in placed:
                logger.warning(f"{entity_type}: ignoring duplicate commit result for record #{offset + target}")
                continue
            placed[target] = row

        result = BatchResult()
        for i, key in enumerate(keys):
            row = placed.get(i)
            index = offset + i

            if row is None:
                messages = [NO_RESULT_MESSAGE]
            elif row.success and not is_empty(row.id):
                outcome = CommitOutcome(index=index, business_key=key, platform_id=str(row.id))
                if self._was_created(row, strategy.operation):
                    result.created.append(outcome)
                else:
                    result.updated.append(outcome)
                continue
            elif row.success:
                messages = [NO_ID_MESSAGE]
            else:
                messages = list(row.errors) or ["Unknown error"]

            logger.error(f"{entity_type} [{key}] failed: {'; '.join(messages)}")
            result.failures.append(CommitFailure(index=index, business_key=key, messages=messages))

        return result

    @staticmethod
    def _place(
        row: CommitRow,
        position: int,
        size: int,
        external_ids: Dict[str, List[int]],
        placed: Dict[int, CommitRow],
        strategy: StrategySpec
    ) -> Optional[int]:
        if strategy.external_id_field and not is_empty(row.external_id):
            candidates = external_ids.get(stringify(row.external_id), [])
            for candidate in candidates:
                if candidate not in placed:
                    return candidate
            return candidates[0] if candidates else None

        if row.index is not None:
            return row.index if 0 <= row.index < size else None

        return position if position < size else None

    @staticmethod
    def _was_created(row: CommitRow, operation: OperationType) -> bool:
        if operation == OperationType.INSERT:
            return True
        if operation == OperationType.UPDATE:
            return False
        return row.created
