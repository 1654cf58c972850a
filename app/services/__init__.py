# app/services/__init__.py
# Import the Analyzer service
from app.services.analyzer import AnalysisStage, PlantAnalyzerService
