"""Data models for the seed loader."""

from .mapping import (
    OperationType,
    CommitApi,
    OnMissing,
    TransformKind,
    TransformOp,
    ReferenceEntry,
    IdentifySpec,
    ShapeSpec,
    TransformSpec,
    ValidateSpec,
    StrategySpec,
    MappingConfig,
    deep_merge,
)
from .pipeline import (
    Step,
    StepMode,
    IdMapPolicy,
    PipelineConfig,
    RunStatus,
)
from .record import (
    CommitRow,
    CommitResponse,
    CommitOutcome,
    CommitFailure,
    BatchResult,
    StepReport,
    RunReport,
)
from .describe import (
    FieldInfo,
    EntityDescribe,
)

__all__ = [
    "OperationType",
    "CommitApi",
    "OnMissing",
    "TransformKind",
    "TransformOp",
    "ReferenceEntry",
    "IdentifySpec",
    "ShapeSpec",
    "TransformSpec",
    "ValidateSpec",
    "StrategySpec",
    "MappingConfig",
    "deep_merge",
    "Step",
    "StepMode",
    "IdMapPolicy",
    "PipelineConfig",
    "RunStatus",
    "CommitRow",
    "CommitResponse",
    "CommitOutcome",
    "CommitFailure",
    "BatchResult",
    "StepReport",
    "RunReport",
    "FieldInfo",
    "EntityDescribe",
]
