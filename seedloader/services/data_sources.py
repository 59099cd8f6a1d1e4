"""Seed data files: loading and locating the record array for a step."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ConfigurationError
from ..utils import read_json

logger = logging.getLogger(__name__)


class DataSourceLoader:
    """Loads JSON seed documents, each file read at most once per run."""

    def __init__(self, data_root: str = "."):
        self.data_root = Path(data_root)
        self._cache: Dict[Path, Any] = {}

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.data_root / candidate

    def load(self, path: str) -> Any:
        """Load (or return the cached) seed document at path."""
        file_path = self.resolve(path)
        if file_path not in self._cache:
            if not file_path.exists():
                raise ConfigurationError(f"Data file not found: {file_path}")
            self._cache[file_path] = read_json(file_path)
            logger.debug(f"Loaded data file {file_path}")
        return self._cache[file_path]

    def records_at(self, document: Any, key: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Return the record array at key (or the document root).

        Raises:
            ConfigurationError: If the value there is not a list
        """
        data = document.get(key) if key and isinstance(document, dict) else document
        if key and not isinstance(document, dict):
            data = None

        if not isinstance(data, list):
            if isinstance(document, list):
                available = "(root is array)"
            elif isinstance(document, dict):
                available = ", ".join(document.keys()) or "(none)"
            else:
                available = "(none)"
            raise ConfigurationError(
                f"Data at key '{key or '<root>'}' is not an array. Available keys: {available}"
            )

        return data
