# app/models/__init__.py
# Imports for easier usage
from app.models.plant_analysis import (
    AnalysisResult,
    CareRecommendation,
    ChatMessage,
    ChatRole,
    HealthAssessment,
    HealthIssue,
    HealthStatus,
    Identification,
    ImageData,
    Severity,
)
