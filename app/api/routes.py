# app/api/routes.py
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

from app.api.dependencies import get_analyzer_service
from app.config import Settings, get_settings
from app.models.plant_analysis import AnalysisResult, ChatRequest, ChatResponse
from app.services.analyzer import PlantAnalyzerService
from app.services.error_classifier import ErrorKind
from app.services.exceptions import AnalysisError, AnalysisInProgressError

router = APIRouter()
logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = ["image/jpeg", "image/png", "image/webp", "image/gif", "image/bmp", "image/tiff"]

ERROR_STATUS_CODES = {
    ErrorKind.QUOTA: 429,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.FATAL: 502,
}


def _analysis_http_error(error: AnalysisError) -> HTTPException:
    return HTTPException(status_code=ERROR_STATUS_CODES[error.kind], detail=error.message)


@router.post(
    "/analyze",
    response_model=AnalysisResult,
    summary="Analyze an image of a plant",
    description="Upload an image to identify the plant, assess its health and get care recommendations",
)
async def analyze_plant_image(
        file: UploadFile = File(...),
        plant_id: Optional[str] = Form(None),
        settings: Settings = Depends(get_settings),
        analyzer: PlantAnalyzerService = Depends(get_analyzer_service),
) -> AnalysisResult:
    """
    API endpoint for plant image analysis. Reads image bytes directly.

    Args:
        file: The uploaded image file.
        plant_id: Optional plant this analysis should be attached to.
        settings: Application settings.
        analyzer: The analysis service.

    Returns:
        The full analysis result, already stored in the history.
    """
    if file.content_type not in SUPPORTED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Only {', '.join(SUPPORTED_CONTENT_TYPES)} allowed."
        )

    if file.size is not None and file.size > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.MAX_UPLOAD_SIZE // 1024 // 1024} MB."
        )

    try:
        image_bytes = await file.read()

        if not image_bytes:
            raise HTTPException(status_code=400, detail="Uploaded file is empty.")

        return await analyzer.analyze_image(image_bytes, plant_id=plant_id)

    except HTTPException as http_exc:
        raise http_exc
    except AnalysisInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AnalysisError as e:
        raise _analysis_http_error(e)
    except Exception as e:
        logger.error(f"Error during image analysis: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error during image analysis: {str(e)}")


@router.get(
    "/analyses",
    response_model=List[AnalysisResult],
    summary="List stored analyses",
    description="Stored analyses in insertion order, optionally filtered by plant",
)
async def list_analyses(
        plant_id: Optional[str] = None,
        analyzer: PlantAnalyzerService = Depends(get_analyzer_service),
) -> List[AnalysisResult]:
    if plant_id:
        return analyzer.get_analysis_history(plant_id)
    return analyzer.list_results()


@router.get("/analyses/{analysis_id}", response_model=AnalysisResult, summary="Get a stored analysis")
async def get_analysis(
        analysis_id: str,
        analyzer: PlantAnalyzerService = Depends(get_analyzer_service),
) -> AnalysisResult:
    result = analyzer.get_result(analysis_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Analysis with ID {analysis_id} not found")
    return result


@router.delete("/analyses/{analysis_id}", status_code=204, summary="Delete a stored analysis")
async def delete_analysis(
        analysis_id: str,
        analyzer: PlantAnalyzerService = Depends(get_analyzer_service),
) -> Response:
    if not analyzer.delete_result(analysis_id):
        raise HTTPException(status_code=404, detail=f"Analysis with ID {analysis_id} not found")
    return Response(status_code=204)


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask the plant expert",
    description="Free-form plant care conversation; send earlier turns as history",
)
async def expert_chat(
        request: ChatRequest,
        analyzer: PlantAnalyzerService = Depends(get_analyzer_service),
) -> ChatResponse:
    try:
        reply = await analyzer.chat(request.message, request.history)
    except AnalysisError as e:
        raise _analysis_http_error(e)
    return ChatResponse(reply=reply)


@router.get(
    "/health",
    summary="API health status",
    description="Check if the analysis service is available"
)
async def health_check() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": "plant-care-analyzer",
        "version": "0.1.0",
    }
