# app/services/analyzer.py
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence, Union

from app.models.plant_analysis import AnalysisResult, ChatMessage, ImageData
from app.services.error_classifier import classify, user_message
from app.services.exceptions import (
    AnalysisError,
    AnalysisInProgressError,
    ImageProcessingError,
)
from app.services.gemini_client import GeminiClient
from app.services.image_preprocessor import ImagePreprocessor
from app.services.result_store import BoundedResultStore

logger = logging.getLogger(__name__)


class AnalysisStage(str, Enum):
    """Stages of one analysis run, in execution order."""
    PREPROCESS = "preprocess"
    IDENTIFY = "identify"
    ASSESS_HEALTH = "assess_health"
    RECOMMEND_CARE = "recommend_care"
    COMPRESS = "compress"
    ASSEMBLE = "assemble"
    PERSIST = "persist"


def _enter(stage: AnalysisStage) -> AnalysisStage:
    logger.debug(f"Analysis stage: {stage.value}")
    return stage


class PlantAnalyzerService:
    """Service for plant image analysis: identify, diagnose, recommend care, keep history."""

    def __init__(self, preprocessor: ImagePreprocessor, ai_client: GeminiClient, store: BoundedResultStore):
        self.preprocessor = preprocessor
        self.ai_client = ai_client
        self.store = store
        self.is_analyzing = False

    async def analyze_image(self, image: Union[ImageData, bytes], plant_id: Optional[str] = None) -> AnalysisResult:
        """
        Run the full pipeline for one image.

        The three AI calls run strictly one after another. If any of them
        fails the run is aborted with an ``AnalysisError`` whose message is
        meant for the end user; no partial result is ever returned. Image
        compression and persistence failures are recovered and do not abort.

        Args:
            image: The captured image, as ``ImageData`` or raw encoded bytes.
            plant_id: Optional plant catalog entry the analysis belongs to.

        Returns:
            The assembled analysis result.
        """
        if self.is_analyzing:
            raise AnalysisInProgressError("An analysis is already in progress")

        self.is_analyzing = True
        start_time = time.time()
        try:
            result = await self._run(image, plant_id)
        finally:
            self.is_analyzing = False

        processing_time = int((time.time() - start_time) * 1000)
        logger.info(f"Analysis {result.id} finished in {processing_time} ms")
        return result

    async def _run(self, image: Union[ImageData, bytes], plant_id: Optional[str]) -> AnalysisResult:
        stage = _enter(AnalysisStage.PREPROCESS)
        if isinstance(image, bytes):
            try:
                image = self.preprocessor.describe(image)
            except ImageProcessingError as e:
                logger.warning(f"Could not inspect image, sending it as-is: {e}")
                image = ImageData(data=image)
        prepared = self.preprocessor.normalize(image)

        try:
            stage = _enter(AnalysisStage.IDENTIFY)
            identification = await self.ai_client.identify(prepared)

            stage = _enter(AnalysisStage.ASSESS_HEALTH)
            health = await self.ai_client.assess_health(prepared)

            stage = _enter(AnalysisStage.RECOMMEND_CARE)
            care = await self.ai_client.recommend_care(identification.common_name, identification.scientific_name)
        except Exception as e:
            kind = classify(e)
            logger.error(f"Analysis aborted at stage '{stage.value}' ({kind.value}): {e}", exc_info=True)
            raise AnalysisError(user_message(kind), kind=kind, stage=stage.value) from e

        stage = _enter(AnalysisStage.COMPRESS)
        try:
            stored_image = self.preprocessor.compress_for_storage(prepared)
        except ImageProcessingError as e:
            logger.warning(f"Storage compression failed, keeping the preprocessed image: {e}")
            stored_image = prepared

        stage = _enter(AnalysisStage.ASSEMBLE)
        result = AnalysisResult(
            id=str(uuid.uuid4()),
            plant_id=plant_id or None,
            captured_at=datetime.now(timezone.utc),
            image_url=stored_image.to_data_url(),
            identification=identification,
            health=health,
            care=care,
        )

        stage = _enter(AnalysisStage.PERSIST)
        try:
            self.store.append(result)
        except Exception as e:
            logger.error(f"Could not store analysis {result.id}, returning it anyway: {e}", exc_info=True)

        return result

    def get_analysis_history(self, plant_id: str) -> List[AnalysisResult]:
        return self.store.for_plant(plant_id)

    def list_results(self) -> List[AnalysisResult]:
        return self.store.load_all()

    def get_result(self, result_id: str) -> Optional[AnalysisResult]:
        return self.store.get(result_id)

    def delete_result(self, result_id: str) -> bool:
        return self.store.remove(result_id)

    async def chat(self, message: str, history: Sequence[ChatMessage] = ()) -> str:
        """Forward a question to the plant expert chat; failures become ``AnalysisError``."""
        try:
            return await self.ai_client.chat(message, history)
        except Exception as e:
            kind = classify(e)
            logger.error(f"Expert chat failed ({kind.value}): {e}", exc_info=True)
            raise AnalysisError(user_message(kind), kind=kind, stage="chat") from e
