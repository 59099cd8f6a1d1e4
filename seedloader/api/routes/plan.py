"""Health and planning endpoints."""

from fastapi import APIRouter, HTTPException

from ..models import PlanRequest, PlanResponse, PlannedStep
from ...errors import SeedLoaderError
from ...models.pipeline import Step
from ...services.scheduler import order_steps
from .errors import status_for

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@router.post("/plan", response_model=PlanResponse)
async def plan_steps(data: PlanRequest):
    """Order pipeline steps so every dependency runs first."""
    try:
        steps = [Step.from_dict(s) for s in data.steps]
        ordered = order_steps(steps, data.allow_cycle_fallback)
    except SeedLoaderError as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))

    return PlanResponse(
        steps=[
            PlannedStep(
                position=position,
                object=step.entity_type,
                data_file=step.data_source,
                depends_on=sorted(step.depends_on),
                mode=step.mode.value,
            )
            for position, step in enumerate(ordered, start=1)
        ],
        total=len(ordered),
    )
