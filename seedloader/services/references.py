"""Reference resolution: fill lookup fields from earlier steps' identifier maps."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import ConfigurationError, ResolutionError
from ..models.mapping import OnMissing, ReferenceEntry
from ..utils import TEMPLATE_PATTERN, first_non_empty, get_by_path, is_empty, render_template, stringify

logger = logging.getLogger(__name__)

# Legacy form: idMaps.Product2['${ParentExternalId}']
LEGACY_FROM_PATTERN = re.compile(r"""^idMaps\.([A-Za-z0-9_]+)\[['"]([^'"]+)['"]\]$""")

IdentifierMaps = Mapping[str, Mapping[str, str]]

_SKIP = object()


def infer_target_entity(field_name: str, current_entity_type: Optional[str]) -> Optional[str]:
    """
    Infer the referenced entity type from a lookup field name.

    "ParentId" points at the current entity, "<Thing>Id" points at "Thing".
    Custom lookups (e.g. "Parent_Product__c") cannot be inferred.
    """
    if field_name == "ParentId":
        return current_entity_type
    if field_name.endswith("Id") and len(field_name) > 2:
        return field_name[:-2]
    return None


def parse_legacy_from(expression: str, record: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    """Parse a legacy ``idMaps.<Entity>['<template>']`` expression into (entity, key)."""
    match = LEGACY_FROM_PATTERN.match(str(expression).strip())
    if not match:
        return None
    entity, key_template = match.groups()
    if TEMPLATE_PATTERN.search(key_template):
        return entity, render_template(key_template, record)
    return entity, key_template


class ReferenceResolver:
    """
    Resolves reference entries against read-only identifier maps.

    The resolver never writes to the identifier maps and never mutates the
    record it is given.
    """

    def __init__(self, identifier_maps: IdentifierMaps, current_entity_type: Optional[str] = None):
        """
        Initialize the resolver.

        Args:
            identifier_maps: entity type -> (business key -> platform id)
            current_entity_type: Entity type of the step being processed
        """
        self.identifier_maps = identifier_maps
        self.current_entity_type = current_entity_type

    def resolve_all(self, record: Dict[str, Any], entries: List[ReferenceEntry]) -> Dict[str, Any]:
        """Return a copy of the record with every reference field resolved."""
        result = dict(record)
        for entry in entries:
            value = self.resolve(entry, result)
            if value is not _SKIP:
                result[entry.field] = value
        return result

    def resolve(self, entry: ReferenceEntry, record: Dict[str, Any]) -> Any:
        """
        Resolve one reference entry.

        Returns:
            The platform id, None (policy "null"), or the module-private
            skip marker (policy "skip", field left untouched)

        Raises:
            ResolutionError: Key or identifier missing under policy "error"
                or on a required reference
            ConfigurationError: Entry has no usable key source or target
        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Resolving reference {entry.to_dict()}")

        target, key = self._target_and_key(entry, record)

        if is_empty(key):
            return self._missing(
                entry,
                f"Missing key for reference field '{entry.field}' "
                f"({'key template' if entry.key_template else 'refKey'})",
            )

        if not target:
            raise ConfigurationError(
                f"Cannot infer the referenced entity for field '{entry.field}'; provide refObject",
                entity_type=self.current_entity_type,
            )

        key = stringify(key)
        bucket = self.identifier_maps.get(target) or {}
        resolved = bucket.get(key)

        if is_empty(resolved):
            return self._missing(
                entry,
                f"Not found: {target}['{key}'] for reference field '{entry.field}'",
            )

        return resolved

    def _target_and_key(self, entry: ReferenceEntry, record: Dict[str, Any]) -> Tuple[Optional[str], Any]:
        target = entry.ref_entity or infer_target_entity(entry.field, self.current_entity_type)

        if entry.from_expression:
            parsed = parse_legacy_from(entry.from_expression, record)
            if parsed is None:
                raise ConfigurationError(
                    f"Unsupported 'from' expression for field '{entry.field}': {entry.from_expression}",
                    entity_type=self.current_entity_type,
                )
            return parsed

        if entry.key_template:
            return target, render_template(entry.key_template, record)

        if entry.ref_key:
            return target, first_non_empty(get_by_path(record, path) for path in entry.ref_key)

        raise ConfigurationError(
            f"Reference field '{entry.field}' needs refKey or a key template",
            entity_type=self.current_entity_type,
        )

    def _missing(self, entry: ReferenceEntry, message: str) -> Any:
        if entry.required or entry.on_missing == OnMissing.ERROR:
            raise ResolutionError(message, entity_type=self.current_entity_type)
        if entry.on_missing == OnMissing.NULL:
            return None
        return _SKIP


def resolve_references(
    record: Dict[str, Any],
    entries: List[ReferenceEntry],
    identifier_maps: IdentifierMaps,
    current_entity_type: Optional[str] = None
) -> Dict[str, Any]:
    """Resolve all reference entries for one record, returning a new record."""
    if not entries:
        return dict(record)
    return ReferenceResolver(identifier_maps, current_entity_type).resolve_all(record, entries)
