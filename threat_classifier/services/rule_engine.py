"""Deterministic threat classification rules.

Turns ranked (class, confidence) predictions and a visual feature list into a
threat verdict, applying these layers in order:

1. Modality rules (X-ray-only features are disabled for RGB photographs)
2. Visual feature validation (firearm features force a firearm verdict)
3. Confidence gating (top-2 confidences too close means ambiguous)
4. Threat level lookup
5. Contextual risk firewall (a firearm is not a bomb threat)
6. Explanation rendering

Class taxonomy rules:
- A firearm must never be classified as suspicious_component
- explosive_device requires at least 2 supporting components
- suspicious_component alone does not imply an explosive
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence

from threat_classifier.models.classification import (
    AnalysisContext,
    ClassificationResult,
    ImageModality,
    ObjectClass,
    Prediction,
    RiskAssessment,
    ThreatLevel,
    VisualFeature,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Feature catalog
# ---------------------------------------------------------------------------

FIREARM_FEATURES: Dict[str, str] = {
    "barrel_structure": "Barrel-like cylindrical structure",
    "trigger_guard": "Trigger guard mechanism",
    "grip_geometry": "Ergonomic grip structure",
    "metallic_frame": "Metallic frame construction",
    "slide_mechanism": "Slide/action mechanism",
}

EXPLOSIVE_FEATURES: Dict[str, str] = {
    "wire_bundle": "Wire bundle or circuitry",
    "battery_pack": "Battery or power source",
    "timer_display": "Timer or electronic display",
    "container": "Container or housing",
    "detonator": "Detonator mechanism",
}

FEATURE_CATALOG: Dict[str, str] = {**FIREARM_FEATURES, **EXPLOSIVE_FEATURES}

CRITICAL_FIREARM_FEATURES = ("barrel_structure", "trigger_guard", "grip_geometry")

# Only visible through an X-ray scan
XRAY_ONLY_FEATURES = ("wire_bundle", "internal_circuitry")

FIREARM_FEATURE_THRESHOLD = 0.6
MIN_CRITICAL_FIREARM_FEATURES = 2
FIREARM_CONFIDENCE_FLOOR = 0.85

AMBIGUITY_GAP = 0.15
REVIEW_CONFIDENCE = 0.7
EXPLANATION_UNCERTAINTY_CONFIDENCE = 0.8

MIN_BOMB_COMPONENTS = 2

THREAT_LEVELS: Dict[str, ThreatLevel] = {
    "firearm": "HIGH",
    "explosive_device": "CRITICAL",
    "suspicious_component": "MEDIUM",
    "benign_object": "SAFE",
}


class GatingResult(NamedTuple):
    """Outcome of confidence gating."""
    is_ambiguous: bool
    requires_review: bool


# ---------------------------------------------------------------------------
# Layer 1 – Modality
# ---------------------------------------------------------------------------

def detect_modality(is_xray: bool = False) -> ImageModality:
    """Return the image modality for the given scan flag."""
    return "X-RAY" if is_xray else "RGB"


def apply_modality_rules(
    features: Sequence[VisualFeature], modality: ImageModality
) -> List[VisualFeature]:
    """Zero out features that a plain photograph cannot show."""
    if modality != "RGB":
        return list(features)

    return [
        f.model_copy(update={"detected": False, "confidence": 0.0})
        if f.name in XRAY_ONLY_FEATURES
        else f
        for f in features
    ]


# ---------------------------------------------------------------------------
# Layer 2 – Visual feature validation
# ---------------------------------------------------------------------------

def validate_firearm_features(features: Sequence[VisualFeature]) -> bool:
    """Return True when enough distinct critical firearm features are confidently detected."""
    detected_critical = {
        f.name for f in features
        if f.name in CRITICAL_FIREARM_FEATURES
        and f.detected
        and f.confidence > FIREARM_FEATURE_THRESHOLD
    }
    return len(detected_critical) >= MIN_CRITICAL_FIREARM_FEATURES


# ---------------------------------------------------------------------------
# Layer 3 – Confidence gating
# ---------------------------------------------------------------------------

def apply_confidence_gating(
    primary_confidence: float, secondary_confidence: float
) -> GatingResult:
    """Mark a result ambiguous when the top-2 confidences are within 15%."""
    is_ambiguous = (primary_confidence - secondary_confidence) < AMBIGUITY_GAP
    return GatingResult(
        is_ambiguous=is_ambiguous,
        requires_review=is_ambiguous or primary_confidence < REVIEW_CONFIDENCE,
    )


# ---------------------------------------------------------------------------
# Layer 4 – Threat level
# ---------------------------------------------------------------------------

def determine_threat_level(object_class: ObjectClass, is_ambiguous: bool) -> ThreatLevel:
    """Map a class to its threat level; ambiguity overrides every class."""
    if is_ambiguous:
        return "AMBIGUOUS"
    return THREAT_LEVELS[object_class]


# ---------------------------------------------------------------------------
# Layer 5 – Contextual risk firewall
# ---------------------------------------------------------------------------

def count_explosive_features(features: Sequence[VisualFeature]) -> int:
    """Count distinct detected features that support an explosive verdict."""
    return len({f.name for f in features if f.name in EXPLOSIVE_FEATURES and f.detected})


def assess_risk(
    object_class: ObjectClass,
    features: Sequence[VisualFeature],
    context: Optional[AnalysisContext] = None,
) -> RiskAssessment:
    """Derive the risk narrative for a classification.

    A firearm verdict never escalates to a bomb threat, and an explosive
    verdict only counts as one when at least two supporting components
    were detected.

    Args:
        object_class: Final (post-override) object class.
        features: Modality-adjusted visual features.
        context: Optional location/crowd context.

    Returns:
        RiskAssessment with threat flags, factors and recommendations.
    """
    location = context.location if context else None
    explosive_count = count_explosive_features(features)

    is_firearm_threat = object_class == "firearm"
    is_bomb_threat = (
        object_class == "explosive_device" and explosive_count >= MIN_BOMB_COMPONENTS
    )

    if is_firearm_threat and explosive_count == 0:
        return RiskAssessment(
            overall_risk="HIGH",
            is_bomb_threat=False,
            is_firearm_threat=True,
            contextual_factors=[
                "Firearm detected without explosive indicators",
                "No wiring or detonation components present",
                f"Location context: {location}" if location else "Standard security protocol",
            ],
            recommendations=[
                "Initiate security personnel response",
                "Do NOT trigger bomb disposal protocol",
                "Human verification required",
            ],
            false_positive_risk="LOW",
        )

    if object_class == "suspicious_component" and explosive_count < MIN_BOMB_COMPONENTS:
        return RiskAssessment(
            overall_risk="MEDIUM",
            is_bomb_threat=False,
            is_firearm_threat=False,
            contextual_factors=[
                "Suspicious components detected",
                "Insufficient evidence for explosive classification",
                "May be benign electronics or tools",
            ],
            recommendations=[
                "Request additional screening",
                "Human review recommended",
                "Do NOT escalate to CRITICAL",
            ],
            false_positive_risk="MEDIUM",
        )

    if object_class == "benign_object":
        return RiskAssessment(
            overall_risk="SAFE",
            is_bomb_threat=False,
            is_firearm_threat=False,
            contextual_factors=["Object classified as benign", "No threat indicators detected"],
            recommendations=["Standard processing", "No action required"],
            false_positive_risk="LOW",
        )

    if is_bomb_threat:
        overall_risk: ThreatLevel = "CRITICAL"
        recommendations = [
            "Initiate evacuation protocol",
            "Contact bomb disposal unit",
            "Secure perimeter",
        ]
    else:
        overall_risk = "HIGH" if is_firearm_threat else "MEDIUM"
        recommendations = ["Security personnel required", "Human verification needed"]

    return RiskAssessment(
        overall_risk=overall_risk,
        is_bomb_threat=is_bomb_threat,
        is_firearm_threat=is_firearm_threat,
        contextual_factors=[
            f"Primary classification: {object_class}",
            f"Explosive indicators: {explosive_count}",
            location or "Unknown location",
        ],
        recommendations=recommendations,
        false_positive_risk="LOW",
    )


# ---------------------------------------------------------------------------
# Layer 6 – Explanation
# ---------------------------------------------------------------------------

def format_confidence(confidence: float) -> str:
    """Render a 0-1 confidence as a one-decimal percentage."""
    return f"{confidence * 100:.1f}%"


def generate_explanation(
    primary_class: ObjectClass,
    confidence: float,
    visual_features: Sequence[VisualFeature],
    modality: ImageModality,
    risk_assessment: RiskAssessment,
) -> str:
    """Render the explanation text, citing only visually confirmed features."""
    detected = [f for f in visual_features if f.detected]
    feature_list = ", ".join(f.description for f in detected)
    confidence_text = format_confidence(confidence)

    uncertainty_note = ""
    if confidence < EXPLANATION_UNCERTAINTY_CONFIDENCE:
        uncertainty_note = (
            "\n\nNote: Classification confidence is below optimal threshold. "
            "Human verification strongly recommended."
        )

    if primary_class == "firearm":
        confirmed = feature_list if detected else "Geometric pattern analysis indicates firearm profile"
        return (
            "DETECTION SUMMARY:\n"
            f"Detected object matches firearm characteristics based on {modality} analysis.\n\n"
            "CONFIRMED VISUAL FEATURES:\n"
            f"{confirmed}\n\n"
            "THREAT CLASSIFICATION: Firearm presence detected\n"
            f"CONFIDENCE: {confidence_text}\n\n"
            "RISK ASSESSMENT:\n"
            "- Explosive components: NOT DETECTED\n"
            "- Detonation mechanism: NOT DETECTED\n"
            "- Wire bundles: NOT DETECTED\n\n"
            f"RECOMMENDATION: {risk_assessment.recommendations[0]}{uncertainty_note}"
        )

    if primary_class == "explosive_device":
        actions = "\n".join(risk_assessment.recommendations)
        return (
            "DETECTION SUMMARY:\n"
            f"Potential explosive device detected based on {modality} analysis.\n\n"
            "CONFIRMED COMPONENTS:\n"
            f"{feature_list}\n\n"
            "THREAT CLASSIFICATION: Explosive device - CRITICAL\n"
            f"CONFIDENCE: {confidence_text}\n\n"
            "IMMEDIATE ACTION REQUIRED:\n"
            f"{actions}{uncertainty_note}"
        )

    if primary_class == "suspicious_component":
        return (
            "DETECTION SUMMARY:\n"
            f"Suspicious component(s) identified in {modality} scan.\n\n"
            "DETECTED ELEMENTS:\n"
            f"{feature_list or 'Unusual structural patterns detected'}\n\n"
            "THREAT CLASSIFICATION: Requires investigation\n"
            f"CONFIDENCE: {confidence_text}\n\n"
            "IMPORTANT: Single suspicious component does NOT indicate explosive device.\n"
            f"Additional screening recommended to determine nature of object.{uncertainty_note}"
        )

    return (
        "DETECTION SUMMARY:\n"
        f"Object analyzed via {modality} imaging.\n\n"
        "CLASSIFICATION: Benign object\n"
        f"CONFIDENCE: {confidence_text}\n\n"
        "No threat indicators detected. Standard processing approved."
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def classify_threat(
    predictions: Sequence[Prediction],
    features: Sequence[VisualFeature],
    is_xray: bool = False,
    context: Optional[AnalysisContext] = None,
) -> ClassificationResult:
    """Run every rule layer and return the final classification.

    Args:
        predictions: Candidate (class, confidence) pairs. Ranked by
            confidence here, so callers may pass them in any order.
        features: Visual features reported for the image.
        is_xray: Whether the source image is an X-ray scan.
        context: Optional location/crowd context for the risk assessment.

    Returns:
        ClassificationResult with threat level, risk assessment and explanation.

    Example:
        >>> result = classify_threat(
        ...     [Prediction(object_class="benign_object", confidence=0.94)], []
        ... )
        >>> result.threat_level
        'SAFE'
    """
    modality = detect_modality(is_xray)
    adjusted_features = apply_modality_rules(features, modality)

    ranked = sorted(predictions, key=lambda p: p.confidence, reverse=True)
    primary_class: ObjectClass = ranked[0].object_class if ranked else "benign_object"
    primary_confidence = ranked[0].confidence if ranked else 0.0
    secondary = ranked[1] if len(ranked) > 1 else None
    secondary_confidence = secondary.confidence if secondary else 0.0

    if validate_firearm_features(adjusted_features) and primary_class != "firearm":
        logger.info(
            f"Firearm features override: {primary_class} -> firearm "
            f"(model confidence {primary_confidence:.2f})"
        )
        primary_class = "firearm"
        primary_confidence = max(primary_confidence, FIREARM_CONFIDENCE_FLOOR)

    gating = apply_confidence_gating(primary_confidence, secondary_confidence)
    threat_level = determine_threat_level(primary_class, gating.is_ambiguous)
    risk_assessment = assess_risk(primary_class, adjusted_features, context)

    explanation = generate_explanation(
        primary_class, primary_confidence, adjusted_features, modality, risk_assessment
    )

    return ClassificationResult(
        primary_class=primary_class,
        confidence=primary_confidence,
        secondary_class=secondary.object_class if secondary else None,
        secondary_confidence=secondary.confidence if secondary else None,
        is_ambiguous=gating.is_ambiguous,
        threat_level=threat_level,
        visual_features=adjusted_features,
        modality=modality,
        requires_human_review=gating.requires_review,
        explanation=explanation,
        risk_assessment=risk_assessment,
    )


DEMO_SAFE_FALLBACK_EXPLANATION = """DETECTION SUMMARY:
Potential threat detected — classification uncertain.

ANALYSIS STATUS: INCONCLUSIVE
CONFIDENCE: Below threshold

IMPORTANT: Automated classification could not reach definitive conclusion.
Human verification is REQUIRED before any action is taken.

This detection has been flagged for manual review to ensure accurate threat assessment."""


def get_demo_safe_fallback() -> ClassificationResult:
    """Return the conservative record shown when live analysis is unavailable."""
    return ClassificationResult(
        primary_class="benign_object",
        confidence=0.45,
        is_ambiguous=True,
        threat_level="AMBIGUOUS",
        visual_features=[],
        modality="RGB",
        requires_human_review=True,
        explanation=DEMO_SAFE_FALLBACK_EXPLANATION,
        risk_assessment=RiskAssessment(
            overall_risk="AMBIGUOUS",
            is_bomb_threat=False,
            is_firearm_threat=False,
            contextual_factors=[
                "Classification confidence below threshold",
                "Ambiguous visual features",
            ],
            recommendations=[
                "Human verification required",
                "Do not escalate without manual review",
            ],
            false_positive_risk="HIGH",
        ),
    )
