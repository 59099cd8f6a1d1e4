"""Service layer for the seed loader."""

from .filters import evaluate, apply_filter
from .references import ReferenceResolver, resolve_references
from .transformer import RecordTransformer, TransformOps, apply_shape, interpolate_constants
from .validator import BatchValidator
from .scheduler import order_steps
from .reconciler import BatchCommitReconciler
from .config_loader import MappingConfigProvider
from .data_sources import DataSourceLoader
from .metadata import SnapshotCatalog
from .generators import GeneratorRegistry, generators

__all__ = [
    "evaluate",
    "apply_filter",
    "ReferenceResolver",
    "resolve_references",
    "RecordTransformer",
    "TransformOps",
    "apply_shape",
    "interpolate_constants",
    "BatchValidator",
    "order_steps",
    "BatchCommitReconciler",
    "MappingConfigProvider",
    "DataSourceLoader",
    "SnapshotCatalog",
    "GeneratorRegistry",
    "generators",
]
