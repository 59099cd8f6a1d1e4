"""Record transformation pipeline: constants, transforms, shape and references."""

import copy
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import ConfigurationError, SeedLoaderError
from ..models.mapping import MappingConfig, ShapeSpec, TransformKind, TransformOp
from ..utils import first_non_empty, get_by_path, is_empty, render_value, stringify
from .references import IdentifierMaps, ReferenceResolver

logger = logging.getLogger(__name__)

CONSTANT_PATTERN = re.compile(r"\$\{\s*constants\.([^}\s]+)\s*\}")


def interpolate_constants(value: Any, constants: Mapping[str, Any]) -> Any:
    """
    Replace ``${constants.Key}`` placeholders throughout a JSON tree.

    A string that is exactly one placeholder takes the constant's value with
    its original type; placeholders embedded in longer strings are rendered
    as text. Returns a new tree.

    Raises:
        ConfigurationError: If a placeholder names an unknown constant
    """
    if isinstance(value, dict):
        return {k: interpolate_constants(v, constants) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate_constants(v, constants) for v in value]
    if not isinstance(value, str) or "${" not in value:
        return value

    def lookup(name: str) -> Any:
        resolved = get_by_path(constants, name)
        if resolved is None:
            raise ConfigurationError(f"Unknown constant '{name}'")
        return resolved

    exact = CONSTANT_PATTERN.fullmatch(value)
    if exact:
        return copy.deepcopy(lookup(exact.group(1)))

    return CONSTANT_PATTERN.sub(lambda m: stringify(lookup(m.group(1))), value)


def apply_shape(record: Dict[str, Any], shape: ShapeSpec) -> Dict[str, Any]:
    """Rename mapped fields, fill defaults and strip removed fields."""
    result = dict(record)

    for source, target in shape.field_map.items():
        if source == target or source not in result:
            continue
        result[target] = result.pop(source)

    for field_name, default in shape.defaults.items():
        if result.get(field_name) is None:
            result[field_name] = copy.deepcopy(default)

    for field_name in shape.remove_fields:
        result.pop(field_name, None)

    return result


class TransformOps:
    """Built-in record transform operations, one handler per TransformKind."""

    def __init__(self):
        self._handlers: Dict[TransformKind, Callable[[Dict[str, Any], TransformOp], None]] = {
            TransformKind.ASSIGN: self._assign,
            TransformKind.COPY: self._copy,
            TransformKind.RENAME: self._rename,
            TransformKind.REMOVE: self._remove,
            TransformKind.COALESCE: self._coalesce,
            TransformKind.CONCAT: self._concat,
        }
        missing = set(TransformKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for transform kinds: {sorted(missing)}")

    def apply(self, record: Dict[str, Any], ops: List[TransformOp]) -> Dict[str, Any]:
        """Apply transform ops in order, returning a new record."""
        result = dict(record)
        for op in ops:
            if op.kind is None:
                logger.debug(f"Skipping unknown transform op '{op.name}'")
                continue
            self._handlers[op.kind](result, op)
        return result

    @staticmethod
    def _require(op: TransformOp, value: Optional[str], name: str) -> str:
        if not value:
            raise ConfigurationError(f"Transform '{op.name}' requires '{name}'")
        return value

    def _assign(self, record: Dict[str, Any], op: TransformOp) -> None:
        target = self._require(op, op.field, "field")
        record[target] = copy.deepcopy(render_value(op.value, record))

    def _copy(self, record: Dict[str, Any], op: TransformOp) -> None:
        source = self._require(op, op.source[0] if op.source else None, "from")
        target = self._require(op, op.target, "to")
        record[target] = copy.deepcopy(get_by_path(record, source))

    def _rename(self, record: Dict[str, Any], op: TransformOp) -> None:
        source = self._require(op, op.source[0] if op.source else None, "from")
        target = self._require(op, op.target, "to")
        if source in record and source != target:
            record[target] = record.pop(source)

    def _remove(self, record: Dict[str, Any], op: TransformOp) -> None:
        fields = list(op.fields)
        if op.field:
            fields.append(op.field)
        for field_name in fields:
            record.pop(field_name, None)

    def _coalesce(self, record: Dict[str, Any], op: TransformOp) -> None:
        target = self._require(op, op.field or op.target, "field")
        value = first_non_empty(get_by_path(record, path) for path in op.source)
        record[target] = copy.deepcopy(value) if value is not None else copy.deepcopy(op.default)

    def _concat(self, record: Dict[str, Any], op: TransformOp) -> None:
        target = self._require(op, op.field or op.target, "field")
        parts = [get_by_path(record, path) for path in op.source]
        record[target] = op.separator.join(stringify(p) for p in parts if not is_empty(p))


class RecordTransformer:
    """
    Runs the per-record pipeline for one entity type.

    Order per record: constants, pre-transforms, shape, references,
    post-transforms. Every phase returns a new record; the seed record is
    never modified.
    """

    def __init__(
        self,
        mapping: MappingConfig,
        constants: Optional[Mapping[str, Any]] = None,
        ops: Optional[TransformOps] = None
    ):
        """
        Initialize the transformer.

        Args:
            mapping: Mapping config (constants already interpolated)
            constants: Constants for ``${constants.*}`` in record values
            ops: Transform op handlers
        """
        self.mapping = mapping
        self.constants = constants or {}
        self.ops = ops or TransformOps()

    def transform(self, record: Dict[str, Any], identifier_maps: IdentifierMaps) -> Dict[str, Any]:
        """
        Transform a single seed record.

        Raises:
            SeedLoaderError: Annotated with the entity type and the record's
                business key
        """
        resolver = ReferenceResolver(identifier_maps, self.mapping.entity_type)
        current = record
        try:
            current = interpolate_constants(copy.deepcopy(record), self.constants)
            current = self.ops.apply(current, self.mapping.transform.pre)
            current = apply_shape(current, self.mapping.shape)
            current = resolver.resolve_all(current, self.mapping.references)
            current = self.ops.apply(current, self.mapping.transform.post)
        except SeedLoaderError as e:
            raise e.with_context(self.mapping.entity_type, self._business_key(current, record))
        return current

    def transform_all(
        self,
        records: List[Dict[str, Any]],
        identifier_maps: IdentifierMaps
    ) -> List[Dict[str, Any]]:
        """Transform every record in order; the first failure propagates."""
        return [self.transform(r, identifier_maps) for r in records]

    def _business_key(self, *candidates: Dict[str, Any]) -> Optional[str]:
        match_key = self.mapping.match_key
        if not match_key:
            return None
        for candidate in candidates:
            value = get_by_path(candidate, match_key)
            if not is_empty(value):
                return stringify(value)
        return None
