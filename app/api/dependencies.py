# app/api/dependencies.py
import logging
from functools import lru_cache

from app.config import get_settings
from app.services.analyzer import PlantAnalyzerService
from app.services.gemini_client import GeminiClient
from app.services.image_preprocessor import ImagePreprocessor
from app.services.result_store import BoundedResultStore, FileBlobStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_analyzer_service() -> PlantAnalyzerService:
    """Build the analyzer with its collaborators from settings (once per process)."""
    settings = get_settings()

    preprocessor = ImagePreprocessor(
        max_dimension=settings.MAX_IMAGE_DIMENSION,
        normalize_quality=settings.NORMALIZE_QUALITY,
        storage_quality=settings.STORAGE_QUALITY,
    )
    ai_client = GeminiClient(
        api_key=settings.GEMINI_API_KEY,
        primary_model=settings.PRIMARY_MODEL,
        fallback_model=settings.FALLBACK_MODEL,
    )
    store = BoundedResultStore(
        FileBlobStore(settings.STORAGE_DIR, capacity_bytes=settings.STORAGE_CAPACITY_BYTES),
        max_results=settings.MAX_STORED_RESULTS,
    )
    loaded = store.load()
    logger.info(f"Loaded {len(loaded)} stored analysis result(s) from {settings.STORAGE_DIR}")

    return PlantAnalyzerService(preprocessor=preprocessor, ai_client=ai_client, store=store)
