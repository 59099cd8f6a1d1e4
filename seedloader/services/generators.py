"""Named generator functions for steps in ``generate`` mode.

A generator receives the step's whole seed document and read-only
identifier maps of the steps that ran before it, and returns the list of
records to push through the transformation pipeline::

    from seedloader.services.generators import generators

    @generators.register("pricebook_entries")
    def pricebook_entries(document, identifier_maps):
        return [
            {"ExternalId": f"PBE-{p['Sku']}", "ProductExternalId": p["Sku"]}
            for p in document["products"]
        ]
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

GeneratorFunc = Callable[[Any, Mapping[str, Mapping[str, str]]], List[Dict[str, Any]]]


class GeneratorRegistry:
    """Registry of generator functions by name."""

    def __init__(self):
        self._generators: Dict[str, GeneratorFunc] = {}

    def register(self, name: Optional[str] = None) -> Callable[[GeneratorFunc], GeneratorFunc]:
        """Decorator registering a function under name (defaults to its own name)."""
        def decorator(func: GeneratorFunc) -> GeneratorFunc:
            self.add(name or func.__name__, func)
            return func
        return decorator

    def add(self, name: str, func: GeneratorFunc) -> None:
        if name in self._generators:
            logger.warning(f"Replacing generator '{name}'")
        self._generators[name] = func

    def get(self, name: str) -> GeneratorFunc:
        try:
            return self._generators[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown generator '{name}'. Registered: {', '.join(sorted(self._generators)) or '(none)'}"
            )

    def run(
        self,
        name: str,
        document: Any,
        identifier_maps: Mapping[str, Mapping[str, str]]
    ) -> List[Dict[str, Any]]:
        """
        Run a generator and check it returned a list of records.

        Raises:
            ConfigurationError: Unknown generator or a non-list result
        """
        records = self.get(name)(document, identifier_maps)
        if not isinstance(records, list):
            raise ConfigurationError(
                f"Generator '{name}' returned {type(records).__name__}, expected a list"
            )
        return records

    @property
    def names(self) -> List[str]:
        return sorted(self._generators)

    def __contains__(self, name: str) -> bool:
        return name in self._generators


generators = GeneratorRegistry()
