"""Layered loading of pipeline, constants and mapping configuration files.

Layout under the config directory::

    pipeline.json                  steps and run switches
    constants.json                 values for ${constants.*}
    base/<Entity>.json             mapping defaults per entity type
    env/<env>/pipeline.json        environment overlays
    env/<env>/constants.json
    env/<env>/<Entity>.json

A step's mapping merges base < env < step configFile < step configInline.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ConfigurationError
from ..models.mapping import MappingConfig, deep_merge
from ..models.pipeline import PipelineConfig, Step
from ..utils import read_json
from .transformer import interpolate_constants

logger = logging.getLogger(__name__)


class MappingConfigProvider:
    """
    Loads and caches configuration for a run.

    Mapping configs are memoized per (entity type, step file, env, inline
    overrides), so repeated loads of the same step are free.
    """

    def __init__(
        self,
        config_dir: str = "./config",
        env: str = "dev",
        data_root: str = "."
    ):
        """
        Initialize the provider.

        Args:
            config_dir: Directory holding pipeline.json, base/ and env/
            env: Environment name selecting the env/<env>/ overlays
            data_root: Directory step configFile paths are relative to
        """
        self.config_dir = Path(config_dir)
        self.env = env
        self.data_root = Path(data_root)
        self._raw_cache: Dict[Tuple[str, str, str, str], Dict[str, Any]] = {}
        self._mapping_cache: Dict[Tuple[str, str, str, str], MappingConfig] = {}
        self._constants: Optional[Dict[str, Any]] = None

    @property
    def base_dir(self) -> Path:
        return self.config_dir / "base"

    @property
    def env_dir(self) -> Path:
        return self.config_dir / "env" / self.env

    def resolve_path(self, path: str) -> Path:
        """Resolve a step-relative path against the data root."""
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.data_root / candidate

    def load_pipeline(self) -> PipelineConfig:
        """Load pipeline.json merged with the environment overlay."""
        base_path = self.config_dir / "pipeline.json"
        if not base_path.exists():
            raise ConfigurationError(f"Missing pipeline at {base_path}")

        merged = self._merge_layers([base_path, self.env_dir / "pipeline.json"])
        return PipelineConfig.from_dict(merged)

    def load_constants(self) -> Dict[str, Any]:
        """Load constants.json merged with the environment overlay."""
        if self._constants is None:
            self._constants = self._merge_layers([
                self.config_dir / "constants.json",
                self.env_dir / "constants.json",
            ])
            logger.debug(f"Loaded {len(self._constants)} constants for env '{self.env}'")
        return self._constants

    def load_raw_step_config(self, step: Step) -> Dict[str, Any]:
        """Merge a step's mapping layers into one JSON tree (constants not applied)."""
        cache_key = self._cache_key(step)
        if cache_key in self._raw_cache:
            return self._raw_cache[cache_key]

        layers: List[Path] = [
            self.base_dir / f"{step.entity_type}.json",
            self.env_dir / f"{step.entity_type}.json",
        ]
        merged = self._merge_layers(layers)

        if step.config_file:
            step_path = self.resolve_path(step.config_file)
            if not step_path.exists():
                raise ConfigurationError(
                    f"Step configFile not found: {step_path}", entity_type=step.entity_type
                )
            merged = deep_merge(merged, self._read_object(step_path))

        if step.config_inline:
            merged = deep_merge(merged, step.config_inline)

        self._raw_cache[cache_key] = merged
        return merged

    def load_step_config(self, step: Step) -> MappingConfig:
        """
        Load the typed mapping config for a step.

        Raises:
            ConfigurationError: On unreadable files, unknown constants or
                invalid values
        """
        cache_key = self._cache_key(step)
        if cache_key in self._mapping_cache:
            return self._mapping_cache[cache_key]

        raw = self.load_raw_step_config(step)
        try:
            resolved = interpolate_constants(raw, self.load_constants())
        except ConfigurationError as e:
            raise e.with_context(step.entity_type)

        mapping = MappingConfig.from_dict(step.entity_type, resolved)
        mapping.strategy.check(step.entity_type)
        self._mapping_cache[cache_key] = mapping
        logger.debug(f"Loaded mapping for {step.entity_type} (configFile={step.config_file})")
        return mapping

    def clear_cache(self) -> None:
        self._raw_cache.clear()
        self._mapping_cache.clear()
        self._constants = None

    def _cache_key(self, step: Step) -> Tuple[str, str, str, str]:
        inline = json.dumps(step.config_inline, sort_keys=True) if step.config_inline else ""
        return (step.entity_type, step.config_file or "", self.env, inline)

    def _merge_layers(self, paths: List[Path]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for path in paths:
            if path.exists():
                merged = deep_merge(merged, self._read_object(path))
        return merged

    @staticmethod
    def _read_object(path: Path) -> Dict[str, Any]:
        data = read_json(path)
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a JSON object in {path}")
        return data
