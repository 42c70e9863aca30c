"""Canned detection scenarios for the demo path.

Each scenario carries pre-supplied detector predictions and visual features,
so the rule engine can be exercised without calling the hosted model.
"""

from typing import Any, Dict, List, Optional

from threat_classifier.config import get_settings
from threat_classifier.models.analysis import DemoScenario
from threat_classifier.models.classification import AnalysisContext, ClassificationResult
from threat_classifier.services.rule_engine import FEATURE_CATALOG, classify_threat


class ScenarioNotFoundError(KeyError):
    """Raised when a scenario id is not in the catalog."""

    def __init__(self, scenario_id: str):
        super().__init__(scenario_id)
        self.scenario_id = scenario_id

    def __str__(self) -> str:
        return f"Unknown demo scenario '{self.scenario_id}'"


def _feature(name: str, detected: bool, confidence: float) -> Dict[str, Any]:
    return {
        "name": name,
        "detected": detected,
        "confidence": confidence,
        "description": FEATURE_CATALOG[name],
    }


_SCENARIO_DATA: List[Dict[str, Any]] = [
    {
        "id": "firearm-correct",
        "name": "Handgun Detection (Corrected)",
        "description": "Demonstrates CORRECT classification of a handgun — NOT wire bundle",
        "expectedClass": "firearm",
        "predictions": [
            {"class": "firearm", "confidence": 0.92},
            {"class": "benign_object", "confidence": 0.05},
        ],
        "features": [
            _feature("barrel_structure", True, 0.95),
            _feature("trigger_guard", True, 0.91),
            _feature("grip_geometry", True, 0.88),
            _feature("metallic_frame", True, 0.93),
            _feature("slide_mechanism", True, 0.86),
            _feature("wire_bundle", False, 0.0),
            _feature("battery_pack", False, 0.0),
            _feature("detonator", False, 0.0),
        ],
    },
    {
        "id": "explosive-real",
        "name": "Explosive Device (IED)",
        "description": "True explosive with ≥2 supporting components",
        "expectedClass": "explosive_device",
        "predictions": [
            {"class": "explosive_device", "confidence": 0.89},
            {"class": "suspicious_component", "confidence": 0.08},
        ],
        "features": [
            _feature("barrel_structure", False, 0.0),
            _feature("trigger_guard", False, 0.0),
            _feature("grip_geometry", False, 0.0),
            _feature("wire_bundle", True, 0.92),
            _feature("battery_pack", True, 0.88),
            _feature("timer_display", True, 0.85),
            _feature("container", True, 0.91),
            _feature("detonator", True, 0.87),
        ],
    },
    {
        "id": "suspicious-only",
        "name": "Suspicious Component (Single)",
        "description": "Single wire bundle — NOT classified as explosive",
        "expectedClass": "suspicious_component",
        "predictions": [
            {"class": "suspicious_component", "confidence": 0.72},
            {"class": "benign_object", "confidence": 0.21},
        ],
        "features": [
            _feature("barrel_structure", False, 0.0),
            _feature("trigger_guard", False, 0.0),
            _feature("wire_bundle", True, 0.75),
            _feature("battery_pack", False, 0.0),
            _feature("timer_display", False, 0.0),
            _feature("container", False, 0.0),
            _feature("detonator", False, 0.0),
        ],
    },
    {
        "id": "benign-laptop",
        "name": "Benign Object (Laptop)",
        "description": "Common electronics — correctly classified as safe",
        "expectedClass": "benign_object",
        "predictions": [
            {"class": "benign_object", "confidence": 0.94},
            {"class": "suspicious_component", "confidence": 0.04},
        ],
        "features": [
            _feature("barrel_structure", False, 0.0),
            _feature("trigger_guard", False, 0.0),
            _feature("grip_geometry", False, 0.0),
            _feature("wire_bundle", False, 0.0),
            _feature("battery_pack", False, 0.0),
            _feature("detonator", False, 0.0),
        ],
    },
    {
        "id": "ambiguous",
        "name": "Ambiguous Detection",
        "description": "Low confidence difference — triggers human review",
        "expectedClass": "benign_object",
        "predictions": [
            {"class": "suspicious_component", "confidence": 0.48},
            {"class": "benign_object", "confidence": 0.42},
        ],
        "features": [
            _feature("barrel_structure", False, 0.15),
            _feature("wire_bundle", True, 0.52),
            _feature("battery_pack", False, 0.25),
        ],
    },
]

DEMO_SCENARIOS: Dict[str, DemoScenario] = {
    data["id"]: DemoScenario.model_validate(data) for data in _SCENARIO_DATA
}


def list_scenarios() -> List[DemoScenario]:
    """Return every demo scenario in display order."""
    return list(DEMO_SCENARIOS.values())


def get_scenario(scenario_id: str) -> DemoScenario:
    """Look up a scenario by id.

    Raises:
        ScenarioNotFoundError: If no scenario has that id.
    """
    try:
        return DEMO_SCENARIOS[scenario_id]
    except KeyError:
        raise ScenarioNotFoundError(scenario_id) from None


def run_scenario(
    scenario_id: str, context: Optional[AnalysisContext] = None
) -> ClassificationResult:
    """Classify a demo scenario as an RGB photograph.

    Args:
        scenario_id: Scenario to run.
        context: Risk context; defaults to the configured checkpoint location.

    Returns:
        ClassificationResult from the rule engine.
    """
    scenario = get_scenario(scenario_id)
    if context is None:
        context = AnalysisContext(location=get_settings().default_location)

    return classify_threat(
        scenario.predictions,
        scenario.features,
        is_xray=False,
        context=context,
    )
