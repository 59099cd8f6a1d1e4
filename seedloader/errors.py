"""Exception hierarchy for the seed loader.

Every failure raised by the loader derives from SeedLoaderError so callers
(CLI, API, orchestrator) can tell loader failures apart from bugs.
"""

from typing import List, Optional


class SeedLoaderError(Exception):
    """Base exception for all loader failures."""

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        business_key: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.entity_type = entity_type
        self.business_key = business_key

    def with_context(
        self,
        entity_type: Optional[str] = None,
        business_key: Optional[str] = None
    ) -> "SeedLoaderError":
        """Fill in entity type / business key if not already known."""
        if self.entity_type is None and entity_type is not None:
            self.entity_type = entity_type
        if self.business_key is None and business_key is not None:
            self.business_key = business_key
        return self

    def __str__(self) -> str:
        prefix = ""
        if self.entity_type:
            prefix = f"[{self.entity_type}"
            if self.business_key:
                prefix += f":{self.business_key}"
            prefix += "] "
        return f"{prefix}{self.message}"


class ConfigurationError(SeedLoaderError):
    """Raised for invalid pipeline, mapping or runtime configuration."""


class DependencyCycleError(ConfigurationError):
    """Raised when step dependencies form a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle between steps: {' -> '.join(self.cycle)}")


class ResolutionError(SeedLoaderError):
    """Raised when a reference cannot be resolved from the identifier maps."""


class ValidationError(SeedLoaderError):
    """Raised when a step's working set fails required-field or uniqueness checks."""


class SchemaError(SeedLoaderError):
    """Raised when records do not fit the target schema."""


class CommitError(SeedLoaderError):
    """A single record was rejected by the target platform."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        entity_type: Optional[str] = None,
        business_key: Optional[str] = None
    ):
        super().__init__(message, entity_type, business_key)
        self.errors = list(errors) if errors else [message]


class TransportError(SeedLoaderError):
    """Raised when a whole commit call to the target platform fails."""
