"""Pydantic models for threat classification results.

All records are immutable value objects built fresh for every analysis.
Field aliases keep the camelCase wire format consumed by the dashboard.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ObjectClass = Literal["firearm", "explosive_device", "suspicious_component", "benign_object"]
ThreatLevel = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW", "SAFE", "AMBIGUOUS"]
ImageModality = Literal["RGB", "X-RAY"]
FalsePositiveRisk = Literal["LOW", "MEDIUM", "HIGH"]


class FrozenModel(BaseModel):
    """Base model for immutable records with camelCase aliases."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Prediction(FrozenModel):
    """A single (class, confidence) candidate from a detector."""
    object_class: ObjectClass = Field(alias="class", description="Predicted object class")
    confidence: float = Field(ge=0.0, le=1.0, description="Prediction confidence (0.0 to 1.0)")


class VisualFeature(FrozenModel):
    """A visual cue that supports or contradicts a classification."""
    name: str = Field(description="Catalog feature name, e.g. 'barrel_structure'")
    detected: bool = Field(default=False, description="Whether the feature was observed")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="Detection confidence")
    description: str = Field(default="", description="Human-readable description")


class AnalysisContext(FrozenModel):
    """Optional deployment context fed into the risk assessment."""
    location: Optional[str] = Field(default=None, description="Where the scan took place")
    crowd_density: Optional[str] = Field(
        default=None, alias="crowdDensity", description="Crowd density at the location"
    )


class RiskAssessment(FrozenModel):
    """Derived, read-only risk summary for a classification."""
    overall_risk: ThreatLevel = Field(alias="overallRisk")
    is_bomb_threat: bool = Field(alias="isBombThreat")
    is_firearm_threat: bool = Field(alias="isFirearmThreat")
    contextual_factors: List[str] = Field(default_factory=list, alias="contextualFactors")
    recommendations: List[str] = Field(default_factory=list)
    false_positive_risk: FalsePositiveRisk = Field(alias="falsePositiveRisk")


class ClassificationResult(FrozenModel):
    """Final verdict produced by the rule engine."""
    primary_class: ObjectClass = Field(alias="primaryClass")
    confidence: float = Field(ge=0.0, le=1.0)
    secondary_class: Optional[ObjectClass] = Field(default=None, alias="secondaryClass")
    secondary_confidence: Optional[float] = Field(
        default=None, ge=0.0, le=1.0, alias="secondaryConfidence"
    )
    is_ambiguous: bool = Field(alias="isAmbiguous")
    threat_level: ThreatLevel = Field(alias="threatLevel")
    visual_features: List[VisualFeature] = Field(default_factory=list, alias="visualFeatures")
    modality: ImageModality
    requires_human_review: bool = Field(alias="requiresHumanReview")
    explanation: str
    risk_assessment: RiskAssessment = Field(alias="riskAssessment")
