"""Base committer interface for writing batches to the target platform."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import logging

from ..errors import CommitError, ConfigurationError
from ..models.mapping import OperationType, StrategySpec
from ..models.record import CommitResponse, CommitRow
from ..utils import get_by_path, is_empty, stringify

logger = logging.getLogger(__name__)


class BaseCommitter(ABC):
    """
    Base class for commit collaborators.

    A committer writes one batch and reports one CommitRow per record it
    heard back about. Rows carry the record's position in the batch
    (``index``) and, for strategies with an external id field, that field's
    value, so the reconciler can place them even when the platform reorders
    its answers.

    A per-record rejection is reported as a failed row (or raised as
    CommitError, which the caller turns into failed rows). A failure of the
    call itself is raised as TransportError.
    """

    @abstractmethod
    def commit(
        self,
        connection: Any,
        entity_type: str,
        batch: List[Dict[str, Any]],
        strategy: StrategySpec
    ) -> CommitResponse:
        """
        Commit a batch of records.

        Args:
            connection: Platform connection
            entity_type: Target entity type
            batch: Records to write
            strategy: Commit strategy of the step

        Returns:
            CommitResponse with one row per reported record
        """
        pass

    @staticmethod
    def external_id_of(record: Dict[str, Any], strategy: StrategySpec) -> Optional[str]:
        """Value of the strategy's external id field on a record, if any."""
        if not strategy.external_id_field:
            return None
        value = get_by_path(record, strategy.external_id_field)
        return None if is_empty(value) else stringify(value)

    @staticmethod
    def record_id_of(record: Dict[str, Any], entity_type: str) -> str:
        """Platform id of a record being updated."""
        record_id = record.get("Id")
        if is_empty(record_id):
            raise CommitError("Update requires an Id on the record", entity_type=entity_type)
        return str(record_id)

    @staticmethod
    def require_connection(connection: Any, entity_type: str) -> Any:
        if connection is None:
            raise ConfigurationError(
                "A platform connection is required to commit (use dry run otherwise)",
                entity_type=entity_type,
            )
        return connection

    @staticmethod
    def failed_row(index: int, errors: List[str], external_id: Optional[str] = None) -> CommitRow:
        return CommitRow(success=False, index=index, external_id=external_id, errors=list(errors))

    @staticmethod
    def is_upsert(strategy: StrategySpec) -> bool:
        return strategy.operation == OperationType.UPSERT
