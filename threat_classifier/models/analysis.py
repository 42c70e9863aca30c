"""Pydantic models for the live image analysis endpoint.

Defines the JSON reply the language model is instructed to produce and the
request/response envelopes of the analyse endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from threat_classifier.models.classification import (
    AnalysisContext,
    ImageModality,
    Prediction,
    VisualFeature,
)


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and field names."""
    model_config = ConfigDict(populate_by_name=True)


class DetectedFeature(CamelModel):
    """A feature reported by the model (free-form name)."""
    name: str
    confidence: float = 0.0
    description: str = ""


class ThreatIndicators(CamelModel):
    """Summary flags reported by the model."""
    has_firearm_features: bool = Field(default=False, alias="hasFirearmFeatures")
    has_explosive_components: bool = Field(default=False, alias="hasExplosiveComponents")
    component_count: int = Field(default=0, alias="componentCount")


class AIAnalysis(CamelModel):
    """Structured reply from the hosted model.

    Classes are kept as raw strings; they are normalised into the fixed
    taxonomy by the analysis mapping layer.
    """
    detected: bool = False
    primary_class: str = Field(default="benign_object", alias="primaryClass")
    confidence: float = 0.0
    secondary_class: Optional[str] = Field(default=None, alias="secondaryClass")
    secondary_confidence: Optional[float] = Field(default=None, alias="secondaryConfidence")
    detected_features: List[DetectedFeature] = Field(default_factory=list, alias="detectedFeatures")
    explanation: str = ""
    threat_indicators: ThreatIndicators = Field(
        default_factory=ThreatIndicators, alias="threatIndicators"
    )
    is_ambiguous: Optional[bool] = Field(default=None, alias="isAmbiguous")


class AnalyzeRequest(CamelModel):
    """Body of the analyse endpoints."""
    image_base64: Optional[str] = Field(
        default=None,
        alias="imageBase64",
        description="Raw base64 image data or a data: URL",
    )
    is_xray: bool = Field(default=False, alias="isXray", description="Image is an X-ray scan")


class AnalyzeResponse(CamelModel):
    """Envelope returned by POST /api/analyze-threat."""
    success: bool
    analysis: Optional[AIAnalysis] = None
    error: Optional[str] = None
    modality: Optional[ImageModality] = None


class RuleClassificationRequest(CamelModel):
    """Body of POST /api/classify/rules: run the rule engine directly."""
    predictions: List[Prediction] = Field(default_factory=list)
    features: List[VisualFeature] = Field(default_factory=list)
    is_xray: bool = Field(default=False, alias="isXray")
    context: Optional[AnalysisContext] = None


class DemoScenario(CamelModel):
    """A canned detection used by the demo path."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    description: str
    expected_class: str = Field(alias="expectedClass")
    predictions: List[Prediction]
    features: List[VisualFeature]
