"""
Demo scenario API endpoints.

Exposes the canned detections and runs them through the rule engine.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, Response

from threat_classifier.middleware.rate_limit import RATE_LIMITS, get_limiter
from threat_classifier.models.analysis import DemoScenario
from threat_classifier.models.classification import AnalysisContext, ClassificationResult
from threat_classifier.services.demo_scenarios import (
    ScenarioNotFoundError,
    get_scenario,
    list_scenarios,
    run_scenario,
)

router = APIRouter(prefix="/api/scenarios", tags=["scenarios"])
limiter = get_limiter()


@router.get("", response_model=List[DemoScenario])
async def get_scenarios() -> List[DemoScenario]:
    """List every demo scenario."""
    return list_scenarios()


@router.get("/{scenario_id}", response_model=DemoScenario)
async def get_scenario_by_id(scenario_id: str) -> DemoScenario:
    """Get one demo scenario (404 if unknown)."""
    try:
        return get_scenario(scenario_id)
    except ScenarioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{scenario_id}/classify", response_model=ClassificationResult)
@limiter.limit(RATE_LIMITS["rules"])  # type: ignore[untyped-decorator]
async def classify_scenario(
    request: Request,
    response: Response,
    scenario_id: str,
    context: Optional[AnalysisContext] = None,
) -> ClassificationResult:
    """
    Run a demo scenario through the rule engine.

    An optional body ``{"location": "...", "crowdDensity": "..."}`` overrides
    the default checkpoint context.

    Returns:
        200: ClassificationResult
        404: Unknown scenario
    """
    try:
        result = run_scenario(scenario_id, context)
    except ScenarioNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    response.headers["X-Threat-Level"] = result.threat_level
    response.headers["X-Modality"] = result.modality
    return result
