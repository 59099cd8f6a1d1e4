"""Whole-batch validations run on a step's working set before commit."""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ..errors import ValidationError
from ..models.mapping import MappingConfig
from ..utils import get_by_path, is_empty, stringify

logger = logging.getLogger(__name__)


class BatchValidator:
    """
    Validator for a step's transformed records.

    Supports:
    - Required fields (present and non-null on every record)
    - Client-side uniqueness over a composite key
    - Match key presence
    """

    def validate(
        self,
        mapping: MappingConfig,
        records: List[Dict[str, Any]],
        pruned_fields: Optional[Iterable[str]] = None
    ) -> None:
        """
        Run every batch validation configured for the mapping.

        Args:
            mapping: Mapping config of the step
            records: Working set after metadata pruning
            pruned_fields: Fields removed by pruning, named in error messages

        Raises:
            ValidationError: On the first failing check
        """
        self.check_match_keys(mapping.entity_type, records, mapping.require_match_key())
        self.check_required(
            mapping.entity_type,
            records,
            mapping.validate.required_fields,
            mapping.match_key,
            pruned_fields,
        )
        self.check_unique(mapping.entity_type, records, mapping.validate.unique_by)

    def check_required(
        self,
        entity_type: str,
        records: List[Dict[str, Any]],
        required_fields: List[str],
        match_key: Optional[str] = None,
        pruned_fields: Optional[Iterable[str]] = None
    ) -> None:
        """Every required field must be present and non-null on every record."""
        if not required_fields:
            return

        pruned: Set[str] = set(pruned_fields or [])
        for record in records:
            missing = [f for f in required_fields if get_by_path(record, f) is None]
            if not missing:
                continue

            key = stringify(get_by_path(record, match_key)) if match_key else None
            details = []
            for field_name in missing:
                if field_name in pruned:
                    details.append(f"{field_name} (removed by metadata pruning)")
                else:
                    details.append(field_name)
            raise ValidationError(
                f"Missing required fields: {', '.join(details)}",
                entity_type=entity_type,
                business_key=key or None,
            )

    def check_unique(
        self,
        entity_type: str,
        records: List[Dict[str, Any]],
        unique_by: List[str]
    ) -> None:
        """No two records may share the same composite key over unique_by."""
        if not unique_by:
            return

        seen: Set[str] = set()
        for record in records:
            key = "|".join(
                json.dumps(get_by_path(record, f), sort_keys=True, default=str) for f in unique_by
            )
            if key in seen:
                raise ValidationError(
                    f"Uniqueness violated on [{', '.join(unique_by)}], key={key}",
                    entity_type=entity_type,
                )
            seen.add(key)

    def check_match_keys(
        self,
        entity_type: str,
        records: List[Dict[str, Any]],
        match_key: str
    ) -> None:
        """Every record entering commit must carry a non-empty match key."""
        for index, record in enumerate(records):
            if is_empty(get_by_path(record, match_key)):
                raise ValidationError(
                    f"Record #{index} has no value for match key '{match_key}'",
                    entity_type=entity_type,
                )
