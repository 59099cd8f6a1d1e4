"""Mapping of loader errors to HTTP status codes."""

from ...errors import ResolutionError, SchemaError, SeedLoaderError, ValidationError


def status_for(error: SeedLoaderError) -> int:
    """Data the config cannot process is a 422, anything else a 400."""
    if isinstance(error, (ResolutionError, ValidationError, SchemaError)):
        return 422
    return 400
