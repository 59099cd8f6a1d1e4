"""Mapping configuration models: how seed records become platform records."""

import copy
import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from enum import Enum

from ..errors import ConfigurationError
from ..settings import parse_bool

DEFAULT_BATCH_SIZE = 200


class OperationType(str, Enum):
    """Write operation used when committing a step."""
    INSERT = "insert"
    UPSERT = "upsert"
    UPDATE = "update"


class CommitApi(str, Enum):
    """Transport used by the commit collaborator."""
    REST = "rest"  # One call per record
    COMPOSITE = "composite"  # Grouped collection calls
    BULK = "bulk"  # Asynchronous bulk ingest job


class OnMissing(str, Enum):
    """What to do when a reference key or identifier is missing."""
    ERROR = "error"
    NULL = "null"
    SKIP = "skip"


class TransformKind(str, Enum):
    """Supported record transform operations."""
    ASSIGN = "assign"
    COPY = "copy"
    RENAME = "rename"
    REMOVE = "remove"
    COALESCE = "coalesce"
    CONCAT = "concat"


def deep_merge(target: Any, source: Any) -> Any:
    """
    Merge two JSON trees without mutating either.

    Objects merge recursively, arrays are replaced wholesale, primitives
    and mismatched types are overwritten by the source.
    """
    if source is None:
        return copy.deepcopy(target)
    if target is None:
        return copy.deepcopy(source)

    if isinstance(target, dict) and isinstance(source, dict):
        result = copy.deepcopy(target)
        for key, value in source.items():
            result[key] = deep_merge(result.get(key), value)
        return result

    return copy.deepcopy(source)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in data (camelCase and snake_case aliases)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class TransformOp:
    """A single declarative transform applied to a record."""
    name: str
    kind: Optional[TransformKind] = None  # None when the op name is unknown
    field: Optional[str] = None
    source: List[str] = dataclasses.field(default_factory=list)
    target: Optional[str] = None
    value: Any = None
    default: Any = None
    separator: str = " "
    fields: List[str] = dataclasses.field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {"op": self.name}
        if self.field is not None:
            result["field"] = self.field
        if self.source:
            result["from"] = list(self.source)
        if self.target is not None:
            result["to"] = self.target
        if self.value is not None:
            result["value"] = self.value
        if self.default is not None:
            result["default"] = self.default
        if self.kind == TransformKind.CONCAT:
            result["separator"] = self.separator
        if self.fields:
            result["fields"] = list(self.fields)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransformOp":
        """Create from dictionary representation."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Transform entry must be an object, got: {data!r}")

        name = str(_pick(data, "op", "type", default=""))
        try:
            kind = TransformKind(name)
        except ValueError:
            kind = None

        return cls(
            name=name,
            kind=kind,
            field=_pick(data, "field"),
            source=[str(s) for s in _as_list(_pick(data, "from", "source", "fields_from"))],
            target=_pick(data, "to", "target"),
            value=data.get("value"),
            default=data.get("default"),
            separator=str(_pick(data, "separator", "sep", default=" ")),
            fields=[str(f) for f in _as_list(data.get("fields"))],
        )


@dataclass(frozen=True)
class ReferenceEntry:
    """Declares how a lookup field is filled from earlier steps' identifier maps."""
    field: str
    ref_entity: Optional[str] = None
    ref_key: List[str] = dataclasses.field(default_factory=list)
    key_template: Optional[str] = None
    on_missing: OnMissing = OnMissing.ERROR
    required: bool = False
    from_expression: Optional[str] = None  # Legacy: idMaps.Entity['${Key}']

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "field": self.field,
            "onMissing": self.on_missing.value,
            "required": self.required,
        }
        if self.ref_entity:
            result["refObject"] = self.ref_entity
        if self.ref_key:
            result["refKey"] = self.ref_key[0] if len(self.ref_key) == 1 else list(self.ref_key)
        if self.key_template:
            result["refKeyTemplate"] = self.key_template
        if self.from_expression:
            result["from"] = self.from_expression
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReferenceEntry":
        """Create from dictionary representation."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Reference entry must be an object, got: {data!r}")

        target_field = _pick(data, "field", "targetField", "target_field")
        if not target_field:
            raise ConfigurationError(f"Reference entry missing 'field': {data!r}")

        on_missing = _pick(data, "onMissing", "on_missing", default=OnMissing.ERROR.value)
        try:
            on_missing = OnMissing(on_missing)
        except ValueError:
            raise ConfigurationError(
                f"Reference '{target_field}': onMissing must be one of "
                f"{[o.value for o in OnMissing]}, got '{on_missing}'"
            )

        return cls(
            field=str(target_field),
            ref_entity=_pick(data, "refObject", "refEntity", "ref_entity", "targetEntityType"),
            ref_key=[str(k) for k in _as_list(_pick(data, "refKey", "ref_key", "keyExpression"))],
            key_template=_pick(
                data, "refKeyTemplate", "keyTemplate", "key_template",
                "template", "compositeKeyTemplate",
            ),
            on_missing=on_missing,
            required=parse_bool(f"{target_field}.required", data.get("required")),
            from_expression=_pick(data, "from", "from_expression"),
        )


@dataclass(frozen=True)
class IdentifySpec:
    """How records of an entity are identified across runs."""
    match_key: Optional[str] = None


@dataclass(frozen=True)
class ShapeSpec:
    """Declarative rename / default / strip phase."""
    field_map: Dict[str, str] = field(default_factory=dict)
    defaults: Dict[str, Any] = field(default_factory=dict)
    remove_fields: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TransformSpec:
    """Transforms applied before shaping and after reference resolution."""
    pre: List[TransformOp] = field(default_factory=list)
    post: List[TransformOp] = field(default_factory=list)


@dataclass(frozen=True)
class ValidateSpec:
    """Whole-batch validations for a step."""
    required_fields: List[str] = field(default_factory=list)
    unique_by: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class StrategySpec:
    """How a step is committed to the target platform."""
    operation: OperationType = OperationType.INSERT
    api: CommitApi = CommitApi.REST
    external_id_field: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE

    def check(self, entity_type: str) -> None:
        """Validate strategy combinations that cannot be committed."""
        if self.operation == OperationType.UPSERT and not self.external_id_field:
            raise ConfigurationError(
                "strategy.operation 'upsert' requires strategy.externalIdField",
                entity_type=entity_type,
            )
        if self.batch_size <= 0:
            raise ConfigurationError(
                f"strategy.batchSize must be positive, got {self.batch_size}",
                entity_type=entity_type,
            )


@dataclass(frozen=True)
class MappingConfig:
    """Complete mapping configuration for one entity type."""
    entity_type: str
    identify: IdentifySpec = field(default_factory=IdentifySpec)
    shape: ShapeSpec = field(default_factory=ShapeSpec)
    transform: TransformSpec = field(default_factory=TransformSpec)
    references: List[ReferenceEntry] = field(default_factory=list)
    validate: ValidateSpec = field(default_factory=ValidateSpec)
    strategy: StrategySpec = field(default_factory=StrategySpec)

    @property
    def match_key(self) -> Optional[str]:
        return self.identify.match_key

    def require_match_key(self) -> str:
        """Return the match key or fail: every committed record needs one."""
        if not self.identify.match_key:
            raise ConfigurationError(
                "Mapping is missing identify.matchKey",
                entity_type=self.entity_type,
            )
        return self.identify.match_key

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (same keys the JSON files use)."""
        return {
            "identify": {"matchKey": self.identify.match_key},
            "shape": {
                "fieldMap": dict(self.shape.field_map),
                "defaults": copy.deepcopy(self.shape.defaults),
                "removeFields": list(self.shape.remove_fields),
            },
            "transform": {
                "pre": [op.to_dict() for op in self.transform.pre],
                "post": [op.to_dict() for op in self.transform.post],
            },
            "references": [r.to_dict() for r in self.references],
            "validate": {
                "requiredFields": list(self.validate.required_fields),
                "uniqueBy": list(self.validate.unique_by),
            },
            "strategy": {
                "operation": self.strategy.operation.value,
                "api": self.strategy.api.value,
                "externalIdField": self.strategy.external_id_field,
                "batchSize": self.strategy.batch_size,
            },
        }

    @classmethod
    def from_dict(cls, entity_type: str, data: Dict[str, Any]) -> "MappingConfig":
        """Create from a merged JSON mapping tree."""
        if not isinstance(data, dict):
            raise ConfigurationError("Mapping config must be an object", entity_type=entity_type)

        identify = data.get("identify") or {}
        shape = data.get("shape") or {}
        transform = data.get("transform") or {}
        validate = data.get("validate") or {}
        strategy = data.get("strategy") or {}

        match_key = _pick(identify, "matchKey", "match_key")
        if match_key is not None and not isinstance(match_key, str):
            raise ConfigurationError(
                f"identify.matchKey must be a string, got {match_key!r}",
                entity_type=entity_type,
            )

        # Older configs keep shape keys at the top level.
        field_map = _pick(shape, "fieldMap", "field_map", default=None)
        if field_map is None:
            field_map = _pick(data, "fieldMap", "field_map", default={})
        defaults = _pick(shape, "defaults", default=None)
        if defaults is None:
            defaults = data.get("defaults") or {}
        remove_fields = _pick(shape, "removeFields", "remove_fields", default=None)
        if remove_fields is None:
            remove_fields = _pick(data, "removeFields", "remove_fields", default=[])

        try:
            operation = OperationType(str(strategy.get("operation", "insert")).lower())
            api = CommitApi(str(strategy.get("api", "rest")).lower())
        except ValueError as e:
            raise ConfigurationError(f"Invalid strategy: {e}", entity_type=entity_type)

        batch_size = _pick(strategy, "batchSize", "batch_size", default=DEFAULT_BATCH_SIZE)
        try:
            batch_size = int(batch_size)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"strategy.batchSize must be an integer, got {batch_size!r}",
                entity_type=entity_type,
            )

        return cls(
            entity_type=entity_type,
            identify=IdentifySpec(match_key=match_key),
            shape=ShapeSpec(
                field_map={str(k): str(v) for k, v in dict(field_map).items()},
                defaults=dict(defaults),
                remove_fields=[str(f) for f in _as_list(remove_fields)],
            ),
            transform=TransformSpec(
                pre=[TransformOp.from_dict(op) for op in _as_list(transform.get("pre"))],
                post=[TransformOp.from_dict(op) for op in _as_list(transform.get("post"))],
            ),
            references=[ReferenceEntry.from_dict(r) for r in _as_list(data.get("references"))],
            validate=ValidateSpec(
                required_fields=[str(f) for f in _as_list(
                    _pick(validate, "requiredFields", "required_fields"))],
                unique_by=[str(f) for f in _as_list(_pick(validate, "uniqueBy", "unique_by"))],
            ),
            strategy=StrategySpec(
                operation=operation,
                api=api,
                external_id_field=_pick(strategy, "externalIdField", "external_id_field"),
                batch_size=batch_size,
            ),
        )

    @classmethod
    def from_layers(
        cls,
        entity_type: str,
        layers: List[Optional[Dict[str, Any]]]
    ) -> "MappingConfig":
        """Merge config layers (lowest precedence first) and parse the result."""
        merged: Dict[str, Any] = {}
        for layer in layers:
            if layer:
                merged = deep_merge(merged, layer)
        return cls.from_dict(entity_type, merged)


FilterSpec = Union[bool, Dict[str, Any], List[Dict[str, Any]], None]
