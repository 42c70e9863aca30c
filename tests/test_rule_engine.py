"""
Tests for the deterministic threat classification rules.

Covers:
- Modality rules (X-ray-only features disabled for RGB)
- Firearm feature override
- Confidence gating
- Threat level mapping
- Contextual risk firewall (firearm != bomb threat)
- Explanation rendering
"""

import pytest

from threat_classifier.models.classification import AnalysisContext, Prediction, VisualFeature
from threat_classifier.services.rule_engine import (
    apply_confidence_gating,
    apply_modality_rules,
    assess_risk,
    classify_threat,
    count_explosive_features,
    detect_modality,
    determine_threat_level,
    generate_explanation,
    get_demo_safe_fallback,
    validate_firearm_features,
)


def feature(name: str, confidence: float = 0.9, detected: bool = True) -> VisualFeature:
    return VisualFeature(name=name, detected=detected, confidence=confidence, description=name.replace("_", " "))


def prediction(object_class: str, confidence: float) -> Prediction:
    return Prediction(object_class=object_class, confidence=confidence)


# Modality


def test_detect_modality():
    assert detect_modality(True) == "X-RAY"
    assert detect_modality(False) == "RGB"
    assert detect_modality() == "RGB"


def test_rgb_disables_xray_only_features():
    features = [feature("wire_bundle"), feature("internal_circuitry"), feature("battery_pack")]

    adjusted = apply_modality_rules(features, "RGB")

    assert [f.detected for f in adjusted] == [False, False, True]
    assert adjusted[0].confidence == 0.0
    assert adjusted[1].confidence == 0.0
    # Originals are untouched
    assert features[0].detected is True


def test_xray_keeps_all_features():
    features = [feature("wire_bundle"), feature("internal_circuitry")]

    adjusted = apply_modality_rules(features, "X-RAY")

    assert adjusted == features


# Visual feature validation


def test_two_critical_features_confirm_firearm():
    features = [feature("barrel_structure", 0.9), feature("trigger_guard", 0.7)]
    assert validate_firearm_features(features) is True


def test_one_critical_feature_is_not_enough():
    features = [feature("barrel_structure", 0.9), feature("metallic_frame", 0.95)]
    assert validate_firearm_features(features) is False


def test_critical_feature_threshold_is_exclusive():
    features = [feature("barrel_structure", 0.6), feature("grip_geometry", 0.6)]
    assert validate_firearm_features(features) is False


def test_undetected_critical_features_ignored():
    features = [
        feature("barrel_structure", 0.9, detected=False),
        feature("trigger_guard", 0.9, detected=False),
    ]
    assert validate_firearm_features(features) is False


def test_repeated_critical_feature_counts_once():
    features = [feature("barrel_structure", 0.9), feature("barrel_structure", 0.95)]
    assert validate_firearm_features(features) is False


# Confidence gating


@pytest.mark.parametrize(
    "primary,secondary,ambiguous,review",
    [
        (0.92, 0.05, False, False),
        (0.48, 0.42, True, True),
        (0.65, 0.10, False, True),   # clear winner, but low confidence
        (0.80, 0.70, True, True),
        (0.0, 0.0, True, True),
    ],
)
def test_apply_confidence_gating(primary, secondary, ambiguous, review):
    result = apply_confidence_gating(primary, secondary)
    assert result.is_ambiguous is ambiguous
    assert result.requires_review is review


# Threat level


@pytest.mark.parametrize(
    "object_class,expected",
    [
        ("firearm", "HIGH"),
        ("explosive_device", "CRITICAL"),
        ("suspicious_component", "MEDIUM"),
        ("benign_object", "SAFE"),
    ],
)
def test_threat_level_mapping(object_class, expected):
    assert determine_threat_level(object_class, False) == expected
    assert determine_threat_level(object_class, True) == "AMBIGUOUS"


# Risk assessment


def test_firearm_without_explosives_is_security_response():
    risk = assess_risk("firearm", [feature("barrel_structure")], AnalysisContext(location="Gate 4"))

    assert risk.overall_risk == "HIGH"
    assert risk.is_firearm_threat is True
    assert risk.is_bomb_threat is False
    assert risk.recommendations[0] == "Initiate security personnel response"
    assert "Do NOT trigger bomb disposal protocol" in risk.recommendations
    assert "Location context: Gate 4" in risk.contextual_factors
    assert risk.false_positive_risk == "LOW"


def test_firearm_without_location_uses_standard_protocol():
    risk = assess_risk("firearm", [], None)
    assert risk.contextual_factors[2] == "Standard security protocol"


def test_firearm_with_explosive_feature_uses_general_branch():
    risk = assess_risk("firearm", [feature("battery_pack")], None)

    assert risk.overall_risk == "HIGH"
    assert risk.is_bomb_threat is False
    assert risk.contextual_factors == [
        "Primary classification: firearm",
        "Explosive indicators: 1",
        "Unknown location",
    ]
    assert risk.recommendations == ["Security personnel required", "Human verification needed"]


def test_explosive_with_two_components_is_bomb_threat():
    risk = assess_risk("explosive_device", [feature("battery_pack"), feature("detonator")], None)

    assert risk.is_bomb_threat is True
    assert risk.overall_risk == "CRITICAL"
    assert risk.recommendations[0] == "Initiate evacuation protocol"


def test_explosive_with_one_component_is_not_bomb_threat():
    risk = assess_risk("explosive_device", [feature("detonator")], None)

    assert risk.is_bomb_threat is False
    assert risk.overall_risk == "MEDIUM"


def test_explosive_count_ignores_undetected_and_firearm_features():
    features = [
        feature("detonator"),
        feature("container", detected=False),
        feature("barrel_structure"),
    ]
    risk = assess_risk("explosive_device", features, None)
    assert risk.is_bomb_threat is False


def test_repeated_explosive_feature_counts_once():
    features = [feature("battery_pack"), feature("battery_pack")]

    assert count_explosive_features(features) == 1
    risk = assess_risk("explosive_device", features, None)
    assert risk.is_bomb_threat is False
    assert risk.overall_risk == "MEDIUM"


def test_suspicious_component_is_not_escalated():
    risk = assess_risk("suspicious_component", [feature("wire_bundle")], None)

    assert risk.overall_risk == "MEDIUM"
    assert "Do NOT escalate to CRITICAL" in risk.recommendations
    assert risk.false_positive_risk == "MEDIUM"


def test_benign_object_is_safe():
    risk = assess_risk("benign_object", [], None)

    assert risk.overall_risk == "SAFE"
    assert risk.recommendations == ["Standard processing", "No action required"]


# Explanation


def test_firearm_explanation_lists_confirmed_features():
    features = [feature("barrel_structure"), feature("detonator", detected=False)]
    risk = assess_risk("firearm", features, None)

    text = generate_explanation("firearm", 0.92, features, "RGB", risk)

    assert text.startswith("DETECTION SUMMARY:")
    assert "based on RGB analysis" in text
    assert "barrel structure" in text
    assert "detonator" not in text
    assert "CONFIDENCE: 92.0%" in text
    assert "RECOMMENDATION: Initiate security personnel response" in text
    assert "below optimal threshold" not in text


def test_firearm_explanation_without_features():
    risk = assess_risk("firearm", [], None)
    text = generate_explanation("firearm", 0.9, [], "X-RAY", risk)
    assert "Geometric pattern analysis indicates firearm profile" in text


def test_low_confidence_adds_uncertainty_note():
    risk = assess_risk("suspicious_component", [], None)
    text = generate_explanation("suspicious_component", 0.72, [], "RGB", risk)

    assert "Unusual structural patterns detected" in text
    assert "Human verification strongly recommended." in text


def test_benign_explanation_has_no_uncertainty_note():
    risk = assess_risk("benign_object", [], None)
    text = generate_explanation("benign_object", 0.5, [], "RGB", risk)

    assert "CLASSIFICATION: Benign object" in text
    assert "CONFIDENCE: 50.0%" in text
    assert "below optimal threshold" not in text


def test_explosive_explanation_lists_actions():
    features = [feature("battery_pack"), feature("detonator")]
    risk = assess_risk("explosive_device", features, None)

    text = generate_explanation("explosive_device", 0.89, features, "X-RAY", risk)

    assert "Explosive device - CRITICAL" in text
    assert "Initiate evacuation protocol\nContact bomb disposal unit\nSecure perimeter" in text


# Full pipeline


def test_firearm_features_override_model_prediction():
    result = classify_threat(
        [prediction("suspicious_component", 0.7), prediction("benign_object", 0.2)],
        [feature("barrel_structure", 0.9), feature("trigger_guard", 0.8)],
    )

    assert result.primary_class == "firearm"
    assert result.confidence == 0.85
    assert result.threat_level == "HIGH"
    assert result.risk_assessment.is_firearm_threat is True
    assert result.secondary_class == "benign_object"


def test_repeated_firearm_feature_does_not_override():
    result = classify_threat(
        [prediction("benign_object", 0.95)],
        [feature("barrel_structure", 0.9), feature("barrel_structure", 0.9)],
    )

    assert result.primary_class == "benign_object"
    assert result.threat_level == "SAFE"


def test_repeated_explosive_feature_is_not_bomb_threat():
    result = classify_threat(
        [prediction("explosive_device", 0.9)],
        [feature("battery_pack"), feature("battery_pack")],
        is_xray=True,
    )

    assert result.risk_assessment.is_bomb_threat is False
    assert result.risk_assessment.overall_risk == "MEDIUM"


def test_override_keeps_higher_model_confidence():
    result = classify_threat(
        [prediction("benign_object", 0.95)],
        [feature("barrel_structure"), feature("grip_geometry")],
    )

    assert result.primary_class == "firearm"
    assert result.confidence == 0.95


def test_override_is_followed_by_confidence_gating():
    result = classify_threat(
        [prediction("benign_object", 0.9), prediction("suspicious_component", 0.8)],
        [feature("barrel_structure"), feature("grip_geometry")],
    )

    assert result.primary_class == "firearm"
    assert result.is_ambiguous is True
    assert result.threat_level == "AMBIGUOUS"


def test_existing_firearm_confidence_not_floored():
    result = classify_threat(
        [prediction("firearm", 0.75)],
        [feature("barrel_structure"), feature("trigger_guard")],
    )
    assert result.confidence == 0.75


def test_ambiguous_predictions_require_review():
    result = classify_threat(
        [prediction("suspicious_component", 0.48), prediction("benign_object", 0.42)],
        [],
    )

    assert result.is_ambiguous is True
    assert result.requires_human_review is True
    assert result.threat_level == "AMBIGUOUS"
    assert result.primary_class == "suspicious_component"


def test_no_predictions_defaults_to_ambiguous_benign():
    result = classify_threat([], [])

    assert result.primary_class == "benign_object"
    assert result.confidence == 0.0
    assert result.secondary_class is None
    assert result.threat_level == "AMBIGUOUS"


def test_predictions_are_ranked_by_confidence():
    result = classify_threat(
        [prediction("benign_object", 0.1), prediction("firearm", 0.9)],
        [],
    )

    assert result.primary_class == "firearm"
    assert result.secondary_class == "benign_object"
    assert result.secondary_confidence == 0.1


def test_rgb_wire_bundle_cannot_make_bomb_threat():
    features = [feature("wire_bundle"), feature("battery_pack")]

    rgb = classify_threat([prediction("explosive_device", 0.9)], features, is_xray=False)
    xray = classify_threat([prediction("explosive_device", 0.9)], features, is_xray=True)

    assert rgb.risk_assessment.is_bomb_threat is False
    assert xray.risk_assessment.is_bomb_threat is True
    assert xray.modality == "X-RAY"
    assert xray.threat_level == "CRITICAL"


def test_classify_threat_passes_context_to_risk():
    result = classify_threat(
        [prediction("firearm", 0.92), prediction("benign_object", 0.05)],
        [feature("barrel_structure")],
        context=AnalysisContext(location="Terminal B"),
    )
    assert "Location context: Terminal B" in result.risk_assessment.contextual_factors


def test_classification_result_serializes_camel_case():
    result = classify_threat([prediction("benign_object", 0.94)], [])
    data = result.model_dump(by_alias=True)

    assert data["primaryClass"] == "benign_object"
    assert data["threatLevel"] == "SAFE"
    assert data["riskAssessment"]["falsePositiveRisk"] == "LOW"
    assert "requiresHumanReview" in data


def test_demo_safe_fallback():
    result = get_demo_safe_fallback()

    assert result.threat_level == "AMBIGUOUS"
    assert result.primary_class == "benign_object"
    assert result.confidence == 0.45
    assert result.requires_human_review is True
    assert result.risk_assessment.false_positive_risk == "HIGH"
    assert "INCONCLUSIVE" in result.explanation
    assert "Potential threat detected — classification uncertain." in result.explanation
