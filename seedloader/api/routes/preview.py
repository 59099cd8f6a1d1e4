"""Filter and transformation preview endpoints."""

import logging

from fastapi import APIRouter, HTTPException

from ..models import FilterRequest, FilterResponse, PreviewRequest, PreviewResponse
from ...errors import SeedLoaderError, ValidationError
from ...models.mapping import MappingConfig
from ...services.filters import apply_filter
from ...services.transformer import RecordTransformer, interpolate_constants
from ...services.validator import BatchValidator
from .errors import status_for

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/filter", response_model=FilterResponse)
async def filter_records(data: FilterRequest):
    """Return the records a step filter keeps."""
    try:
        matched = apply_filter(data.records, data.filter)
    except SeedLoaderError as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))
    return FilterResponse(records=matched, matched=len(matched), total=len(data.records))


@router.post("/preview", response_model=PreviewResponse)
async def preview_transform(data: PreviewRequest):
    """
    Preview what a step would commit for the given seed records.

    Nothing is written. Batch validation failures are reported in the
    response rather than as an error status.
    """
    try:
        config = interpolate_constants(data.config, data.constants)
        mapping = MappingConfig.from_dict(data.entity_type, config)
        mapping.strategy.check(data.entity_type)
        mapping.require_match_key()

        selected = apply_filter(data.records, data.filter)
        transformer = RecordTransformer(mapping, data.constants)
        records = transformer.transform_all(selected, data.identifier_maps)
    except SeedLoaderError as e:
        logger.info(f"Preview of {data.entity_type} failed: {e}")
        raise HTTPException(status_code=status_for(e), detail=str(e))

    validation_errors = []
    try:
        BatchValidator().validate(mapping, records)
    except ValidationError as e:
        validation_errors.append(str(e))

    if data.limit is not None:
        records = records[:data.limit]

    return PreviewResponse(
        entity_type=data.entity_type,
        records=records,
        selected=len(selected),
        total=len(data.records),
        validation_errors=validation_errors,
        is_valid=not validation_errors,
    )
