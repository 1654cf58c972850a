# app/services/gemini_client.py
import json
import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from app.models.plant_analysis import (
    CareRecommendation,
    ChatMessage,
    HealthAssessment,
    HealthIssue,
    HealthStatus,
    Identification,
    ImageData,
    Severity,
)
from app.services.error_classifier import ErrorKind, classify
from app.services.exceptions import ParseError, QuotaExceededError

logger = logging.getLogger(__name__)

SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
}

JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

# --- Prompts ---

IDENTIFY_PROMPT = """
You are a professional botanist with expertise in plant identification.
Analyze this plant image carefully and provide detailed identification information.

Pay special attention to:
- Leaf shape, arrangement, and venation
- Stem structure and color
- Any visible flowers or fruits
- Overall growth habit and form

Be particularly careful to distinguish between:
- Coffee plants (Coffea species) and Dracaena species
- Common houseplants that may look similar
- Young plants that may not have developed distinctive features yet

If you're uncertain about the exact species, indicate this in your confidence level.

Respond with a JSON object that includes:
{
  "name": "Common name of the plant",
  "scientificName": "Scientific name (genus and species)",
  "confidence": A number between 0-100 representing your confidence level,
  "description": "A detailed description of the plant, including its characteristics and origin",
  "tags": ["Array", "of", "relevant", "tags", "like", "indoor", "flowering", "succulent", "etc"]
}
Only respond with the JSON object, nothing else.
"""

HEALTH_PROMPT = """
You are a plant pathologist and horticultural expert.
Analyze this plant image carefully and provide a detailed health assessment.

Pay special attention to:
- Leaf color, spots, or discoloration
- Signs of pests or pest damage
- Growth patterns and overall vigor
- Stem and branch condition
- Soil condition (if visible)

Respond with a JSON object that includes:
{
  "status": One of ["Healthy", "Needs attention", "Unhealthy"],
  "summary": "A detailed summary of the plant's overall health condition",
  "issues": [
    {
      "name": "Name of the issue (e.g., 'Leaf yellowing')",
      "description": "Detailed description of the issue, including possible causes",
      "severity": One of ["low", "medium", "high"],
      "solution": "Specific recommended solution to address this issue"
    }
  ]
}
If the plant appears healthy with no issues, return an empty array for issues.
Only respond with the JSON object, nothing else.
"""

CARE_PROMPT = """
You are a professional horticulturist with expertise in plant care and cultural knowledge.
Provide detailed and specific care recommendations for {plant}.

Include information about:
- Specific watering needs (frequency, amount, seasonal adjustments)
- Precise light requirements (intensity, duration, placement)
- Soil composition and drainage requirements
- Temperature range and humidity preferences
- Fertilization schedule and type
- Common issues to watch for and how to prevent them
- Pruning and maintenance tips
- Home remedies for healthy growth
- Cultural significance and traditional placement advice (e.g. Vastu or Feng Shui)

Respond with a JSON object that includes:
{{
  "watering": "Detailed watering instructions, including frequency and amount",
  "light": "Light requirements and placement recommendations",
  "soil": "Soil type and composition recommendations",
  "temperature": "Ideal temperature range",
  "humidity": "Recommended humidity levels and how to maintain them",
  "additionalTips": "Any additional care tips or special considerations",
  "summary": "A comprehensive summary of the care guide",
  "homeRemedies": "Natural home remedies to promote healthy growth of the plant",
  "culturalNotes": "Cultural significance and recommended placement"
}}
Only respond with the JSON object, nothing else.
"""

CHAT_PREAMBLE = [
    {
        "role": "user",
        "parts": ["I want to talk about plants, gardening, and plant care. "
                  "I might ask for identification help, care tips, or troubleshooting advice."],
    },
    {
        "role": "model",
        "parts": ["I'd be happy to discuss plants, gardening, and plant care with you! "
                  "I can provide information on plant identification, care requirements, "
                  "troubleshooting common issues, and general gardening advice."],
    },
]

CHAT_GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_k": 40,
    "top_p": 0.95,
    "max_output_tokens": 1000,
}

# --- Field defaults ---

IDENTIFICATION_DEFAULTS = {
    "name": "Unknown Plant",
    "scientificName": "Species unknown",
    "description": "No description available",
}

HEALTH_DEFAULTS = {
    "summary": "Unable to determine plant health status",
}

ISSUE_DEFAULTS = {
    "name": "Unspecified issue",
    "description": "No description available",
}

CARE_DEFAULTS = {
    "watering": "Water when the top inch of soil feels dry.",
    "light": "Provide bright, indirect light.",
    "soil": "Use well-draining potting mix.",
    "temperature": "Keep in normal room temperature (65-75°F/18-24°C).",
    "humidity": "Average humidity levels recommended",
    "additionalTips": "Regularly check for pests and diseases.",
    "summary": "Care guide for {name}. Water appropriately, provide adequate light, and monitor regularly.",
    "homeRemedies": "No specific home remedies information available.",
    "culturalNotes": "No specific cultural significance information available.",
}


# --- Parsing helpers ---

def extract_json_object(text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a free-form model reply."""
    match = JSON_OBJECT_PATTERN.search(text or "")
    if not match:
        raise ParseError("Failed to parse JSON response from Gemini API")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse JSON response from Gemini API: {e}") from e
    if not isinstance(parsed, dict):
        raise ParseError("Gemini API response is not a JSON object")
    return parsed


def as_text(value: Any, default: Optional[str] = None) -> Optional[str]:
    """Coerce a reply field to a string; objects and arrays become JSON text."""
    if value is None or value == "" or value == [] or value == {}:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def as_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if confidence != confidence:  # NaN
        return 0.0
    return min(100.0, max(0.0, confidence))


def as_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        value = [value]
    tags: List[str] = []
    for item in value:
        tag = as_text(item)
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _match_enum(value: Any, enum_cls, default):
    text = as_text(value)
    if text is None:
        return default
    wanted = text.strip().lower().replace("_", " ")
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member
    return default


def parse_identification(payload: Dict[str, Any]) -> Identification:
    return Identification(
        common_name=as_text(payload.get("name") or payload.get("commonName"), IDENTIFICATION_DEFAULTS["name"]),
        scientific_name=as_text(payload.get("scientificName"), IDENTIFICATION_DEFAULTS["scientificName"]),
        confidence=as_confidence(payload.get("confidence")),
        description=as_text(payload.get("description"), IDENTIFICATION_DEFAULTS["description"]),
        tags=as_tags(payload.get("tags")),
    )


def parse_health(payload: Dict[str, Any]) -> HealthAssessment:
    raw_issues = payload.get("issues") or []
    if isinstance(raw_issues, dict):
        raw_issues = [raw_issues]
    if not isinstance(raw_issues, list):
        raw_issues = []

    issues = []
    for raw in raw_issues:
        if isinstance(raw, str):
            raw = {"name": raw}
        if not isinstance(raw, dict):
            continue
        issues.append(HealthIssue(
            name=as_text(raw.get("name"), ISSUE_DEFAULTS["name"]),
            description=as_text(raw.get("description"), ISSUE_DEFAULTS["description"]),
            severity=_match_enum(raw.get("severity"), Severity, Severity.MEDIUM),
            solution=as_text(raw.get("solution")),
        ))

    return HealthAssessment(
        status=_match_enum(payload.get("status"), HealthStatus, HealthStatus.NEEDS_ATTENTION),
        summary=as_text(payload.get("summary"), HEALTH_DEFAULTS["summary"]),
        issues=issues,
    )


def parse_care(payload: Dict[str, Any], plant_name: str) -> CareRecommendation:
    cultural = payload.get("culturalNotes") or payload.get("culturalSignificance")
    return CareRecommendation(
        watering=as_text(payload.get("watering"), CARE_DEFAULTS["watering"]),
        light=as_text(payload.get("light"), CARE_DEFAULTS["light"]),
        soil=as_text(payload.get("soil"), CARE_DEFAULTS["soil"]),
        temperature=as_text(payload.get("temperature"), CARE_DEFAULTS["temperature"]),
        humidity=as_text(payload.get("humidity"), CARE_DEFAULTS["humidity"]),
        additional_tips=as_text(payload.get("additionalTips"), CARE_DEFAULTS["additionalTips"]),
        summary=as_text(payload.get("summary"), CARE_DEFAULTS["summary"].format(name=plant_name)),
        home_remedies=as_text(payload.get("homeRemedies"), CARE_DEFAULTS["homeRemedies"]),
        cultural_notes=as_text(cultural, CARE_DEFAULTS["culturalNotes"]),
    )


def default_model_factory(model_name: str):
    return genai.GenerativeModel(model_name, safety_settings=SAFETY_SETTINGS)


class GeminiClient:
    """
    Thin adapter over the Gemini API for identification, health assessment,
    care recommendations and free-form chat.

    Every request goes to the primary model first. Failures other than quota
    exhaustion are retried once on the fallback model; quota failures are
    raised as ``QuotaExceededError`` straight away.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        primary_model: str = "gemini-2.5-pro",
        fallback_model: str = "gemini-2.5-flash",
        model_factory: Optional[Callable[[str], Any]] = None,
    ):
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        if model_factory is None:
            if not api_key:
                logger.error("Gemini API key is missing. Set GEMINI_API_KEY in the environment or .env file.")
            genai.configure(api_key=api_key)
            model_factory = default_model_factory
        self._model_factory = model_factory
        self._models: Dict[str, Any] = {}

    def _model(self, name: str):
        if name not in self._models:
            self._models[name] = self._model_factory(name)
        return self._models[name]

    async def _send(self, model_name: str, contents, **kwargs) -> str:
        response = await self._model(model_name).generate_content_async(contents, **kwargs)
        return response.text

    async def _generate(self, contents, **kwargs) -> str:
        try:
            return await self._send(self.primary_model, contents, **kwargs)
        except Exception as e:
            if classify(e) is ErrorKind.QUOTA:
                logger.warning(f"Quota exhausted on {self.primary_model}, not falling back: {e}")
                raise QuotaExceededError(str(e)) from e
            logger.warning(f"Primary model {self.primary_model} failed, falling back to {self.fallback_model}: {e}")

        try:
            return await self._send(self.fallback_model, contents, **kwargs)
        except Exception as e:
            if classify(e) is ErrorKind.QUOTA:
                raise QuotaExceededError(str(e)) from e
            logger.error(f"Fallback model {self.fallback_model} failed: {e}")
            raise

    @staticmethod
    def _image_part(image: ImageData) -> Dict[str, Any]:
        return {"mime_type": image.mime_type, "data": image.data}

    async def identify(self, image: ImageData) -> Identification:
        text = await self._generate([IDENTIFY_PROMPT, self._image_part(image)])
        identification = parse_identification(extract_json_object(text))
        logger.info(f"Identified plant as {identification.common_name} ({identification.confidence:.0f}%)")
        return identification

    async def assess_health(self, image: ImageData) -> HealthAssessment:
        text = await self._generate([HEALTH_PROMPT, self._image_part(image)])
        health = parse_health(extract_json_object(text))
        logger.info(f"Health status: {health.status.value}, {len(health.issues)} issue(s)")
        return health

    async def recommend_care(self, common_name: str, scientific_name: Optional[str] = None) -> CareRecommendation:
        plant = f"{common_name} ({scientific_name})" if scientific_name else common_name
        text = await self._generate(CARE_PROMPT.format(plant=plant))
        return parse_care(extract_json_object(text), common_name)

    async def chat(self, message: str, history: Sequence[ChatMessage] = ()) -> str:
        """Answer a plant-care question in the context of earlier turns."""
        contents = list(CHAT_PREAMBLE) + _history_contents(history)
        contents.append({"role": "user", "parts": [message]})
        return await self._generate(contents, generation_config=CHAT_GENERATION_CONFIG)


def _history_contents(history: Iterable[ChatMessage]) -> List[Dict[str, Any]]:
    return [{"role": turn.role.value, "parts": [turn.text]} for turn in history]
