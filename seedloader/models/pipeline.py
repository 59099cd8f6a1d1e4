"""Pipeline models: the ordered list of load steps for a run."""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional
from enum import Enum

from ..errors import ConfigurationError
from ..settings import parse_bool


class StepMode(str, Enum):
    """How a step produces its working set."""
    DIRECT = "direct"  # Seed records pass straight into the transform pipeline
    GENERATE = "generate"  # A named generator function builds the records


class IdMapPolicy(str, Enum):
    """Merge policy for identifier maps when a business key is seen again."""
    PREFER_EXISTING = "prefer_existing"
    PREFER_NEW = "prefer_new"


class RunStatus(str, Enum):
    """Status of a load run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    """One unit of work loading one entity type."""
    entity_type: str
    data_source: str
    data_key: Optional[str] = None
    filter: Any = None  # bool, predicate dict or list of predicates
    mode: StepMode = StepMode.DIRECT
    generator: Optional[str] = None
    depends_on: FrozenSet[str] = field(default_factory=frozenset)
    config_file: Optional[str] = None
    config_inline: Optional[Dict[str, Any]] = None

    def __hash__(self) -> int:
        return hash((self.entity_type, self.data_source, self.data_key, self.generator))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (pipeline.json keys)."""
        return {
            "object": self.entity_type,
            "dataFile": self.data_source,
            "dataKey": self.data_key,
            "filter": self.filter,
            "mode": self.mode.value,
            "generator": self.generator,
            "dependsOn": sorted(self.depends_on),
            "configFile": self.config_file,
            "configInline": self.config_inline,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        """Create from a pipeline.json step entry."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Pipeline step must be an object, got: {data!r}")

        entity_type = data.get("object") or data.get("entity_type")
        if not entity_type:
            raise ConfigurationError(f"Pipeline step is missing 'object': {data!r}")

        data_source = data.get("dataFile") or data.get("data_source")
        if not data_source:
            raise ConfigurationError("Pipeline step is missing 'dataFile'", entity_type=entity_type)

        try:
            mode = StepMode(data.get("mode") or StepMode.DIRECT.value)
        except ValueError:
            raise ConfigurationError(
                f"Unknown step mode '{data.get('mode')}'", entity_type=entity_type
            )

        generator = data.get("generator")
        if mode == StepMode.GENERATE and not generator:
            raise ConfigurationError(
                "Step mode 'generate' requires a 'generator'", entity_type=entity_type
            )

        depends_on = data.get("dependsOn", data.get("depends_on")) or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]

        config_inline = data.get("configInline", data.get("config_inline"))
        if config_inline is not None and not isinstance(config_inline, dict):
            raise ConfigurationError("'configInline' must be an object", entity_type=entity_type)

        return cls(
            entity_type=str(entity_type),
            data_source=str(data_source),
            data_key=data.get("dataKey", data.get("data_key")),
            filter=data.get("filter"),
            mode=mode,
            generator=generator,
            depends_on=frozenset(str(d) for d in depends_on),
            config_file=data.get("configFile", data.get("config_file")),
            config_inline=config_inline,
        )


@dataclass
class PipelineConfig:
    """Steps plus run-wide switches."""
    steps: List[Step] = field(default_factory=list)
    dry_run: Optional[bool] = None  # None defers to the environment
    id_map_policy: IdMapPolicy = IdMapPolicy.PREFER_EXISTING
    allow_cycle_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "steps": [s.to_dict() for s in self.steps],
            "dryRun": self.dry_run,
            "idMapPolicy": self.id_map_policy.value,
            "allowCycleFallback": self.allow_cycle_fallback,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create from a merged pipeline.json tree."""
        if not isinstance(data, dict):
            raise ConfigurationError("pipeline.json must contain an object")

        steps = data.get("steps")
        if not isinstance(steps, list):
            raise ConfigurationError("pipeline.json must contain a 'steps' array")

        policy = data.get("idMapPolicy", data.get("id_map_policy")) or IdMapPolicy.PREFER_EXISTING.value
        try:
            policy = IdMapPolicy(policy)
        except ValueError:
            raise ConfigurationError(
                f"idMapPolicy must be one of {[p.value for p in IdMapPolicy]}, got '{policy}'"
            )

        dry_run = data.get("dryRun", data.get("dry_run"))

        return cls(
            steps=[Step.from_dict(s) for s in steps],
            dry_run=parse_bool("dryRun", dry_run) if dry_run is not None else None,
            id_map_policy=policy,
            allow_cycle_fallback=parse_bool(
                "allowCycleFallback", data.get("allowCycleFallback", data.get("allow_cycle_fallback"))
            ),
        )
