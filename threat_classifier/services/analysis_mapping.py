"""Map a hosted-model analysis onto the rule engine's vocabulary.

The model answers in free text: class names and feature names are only
loosely constrained by the prompt. This module normalises them into the fixed
taxonomy and feature catalog, then re-applies the deterministic rules so a
live verdict obeys the same invariants as the demo path.
"""

import re
from typing import Dict, List, Optional, Sequence

from threat_classifier.config import get_settings
from threat_classifier.models.analysis import AIAnalysis, DetectedFeature
from threat_classifier.models.classification import (
    AnalysisContext,
    ClassificationResult,
    ImageModality,
    ObjectClass,
    VisualFeature,
)
from threat_classifier.services.rule_engine import (
    FEATURE_CATALOG,
    FIREARM_CONFIDENCE_FLOOR,
    apply_confidence_gating,
    assess_risk,
    determine_threat_level,
    format_confidence,
    generate_explanation,
    validate_firearm_features,
)

_CLASS_KEYWORDS: List[tuple[ObjectClass, tuple[str, ...]]] = [
    ("firearm", ("firearm", "gun", "weapon", "pistol", "rifle")),
    ("explosive_device", ("explosive", "bomb", "ied")),
    ("suspicious_component", ("suspicious", "component")),
]


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def normalize_object_class(class_str: str) -> ObjectClass:
    """Normalise a free-text class name into the fixed taxonomy.

    Keywords are checked in priority order, so "weapon component" is a
    firearm. Anything unrecognised is treated as benign.
    """
    normalized = re.sub(r"[^a-z_]", "", class_str.lower())
    for object_class, keywords in _CLASS_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return object_class
    return "benign_object"


def _matches(catalog_name: str, ai_name: str) -> bool:
    lowered = ai_name.lower()
    return (
        catalog_name == ai_name
        or lowered in catalog_name
        or catalog_name.replace("_", " ") in lowered
    )


def map_to_visual_features(ai_features: Sequence[DetectedFeature]) -> List[VisualFeature]:
    """Project model-reported features onto the full feature catalog.

    Every catalog feature is returned; those matched by a reported feature
    are marked detected with the reported confidence and description.
    Unmatched reported features are dropped.
    """
    features: Dict[str, VisualFeature] = {
        name: VisualFeature(name=name, detected=False, confidence=0.0, description=description)
        for name, description in FEATURE_CATALOG.items()
    }

    for ai_feature in ai_features:
        if not ai_feature.name.strip():
            continue
        match = next((name for name in features if _matches(name, ai_feature.name)), None)
        if match is None:
            continue
        features[match] = features[match].model_copy(update={
            "detected": True,
            "confidence": _clamp(ai_feature.confidence),
            "description": ai_feature.description or features[match].description,
        })

    return list(features.values())


def build_classification(
    analysis: AIAnalysis,
    modality: ImageModality,
    context: Optional[AnalysisContext] = None,
) -> ClassificationResult:
    """
    Turn a model analysis into a final ClassificationResult.

    Applies the firearm feature override and confidence gating on top of the
    model's own verdict. A model-flagged ambiguity always forces review.

    Args:
        analysis: Parsed model reply
        modality: Modality of the analysed image
        context: Risk context; defaults to the configured checkpoint location

    Returns:
        ClassificationResult with the model's explanation wrapped in the
        standard summary (or the canned template if the model gave none)
    """
    if context is None:
        context = AnalysisContext(location=get_settings().default_location)

    visual_features = map_to_visual_features(analysis.detected_features)
    primary_class = normalize_object_class(analysis.primary_class)
    secondary_class = (
        normalize_object_class(analysis.secondary_class) if analysis.secondary_class else None
    )
    confidence = _clamp(analysis.confidence)
    secondary_confidence = (
        _clamp(analysis.secondary_confidence)
        if analysis.secondary_confidence is not None
        else None
    )

    if validate_firearm_features(visual_features) and primary_class != "firearm":
        primary_class = "firearm"
        confidence = max(confidence, FIREARM_CONFIDENCE_FLOOR)

    gating = apply_confidence_gating(confidence, secondary_confidence or 0.0)
    is_ambiguous = gating.is_ambiguous or bool(analysis.is_ambiguous)
    requires_review = gating.requires_review or is_ambiguous

    threat_level = determine_threat_level(primary_class, is_ambiguous)
    risk_assessment = assess_risk(primary_class, visual_features, context)

    if analysis.explanation:
        explanation = (
            f"DETECTION SUMMARY:\n{analysis.explanation}\n\n"
            f"CONFIDENCE: {format_confidence(confidence)}\n\n"
            f"MODALITY: {modality}\n\n"
            f"{'HUMAN REVIEW REQUIRED' if requires_review else ''}"
        )
    else:
        explanation = generate_explanation(
            primary_class, confidence, visual_features, modality, risk_assessment
        )

    return ClassificationResult(
        primary_class=primary_class,
        confidence=confidence,
        secondary_class=secondary_class,
        secondary_confidence=secondary_confidence,
        is_ambiguous=is_ambiguous,
        threat_level=threat_level,
        visual_features=visual_features,
        modality=modality,
        requires_human_review=requires_review,
        explanation=explanation,
        risk_assessment=risk_assessment,
    )
