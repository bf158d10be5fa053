# medscan/ai.py
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from medscan.config import MODEL_NAME, get_async_client
from medscan.errors import ReportGenerationError
from medscan.models import (
    CarePlace,
    ChatSession,
    ImageAttachment,
    PatientDetails,
    PlaceFilter,
    ReportPayload,
    RiskLevel,
    StructuredAIResponse,
    new_id,
    utcnow,
)
from medscan.places import build_maps_url, describe_filter

logger = logging.getLogger(__name__)

REPORT_FAILED_MESSAGE = "Failed to analyze data. Please check your connection and try again."
ACCESS_DENIED_MESSAGE = (
    "Access denied. The API key may be invalid or lacks permission for this model."
)
DEFAULT_DISCLAIMER = (
    "This report is generated by AI for informational purposes only. "
    "It does not constitute a medical diagnosis or prescription. "
    "Always consult a qualified healthcare professional for medical advice, "
    "diagnosis, or treatment."
)
CHAT_FALLBACK_SUMMARY = (
    "I'm having trouble connecting to the medical knowledge base right now. "
    "Please try again or seek professional care if urgent."
)

_FENCED_BLOCK_RE = re.compile(r"```[a-zA-Z]*[ \t]*\n?(.*?)```", re.DOTALL)
_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?|\n?\s*```\s*$")

_MEDICINE_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "form": {"type": "string"},
        "dose": {"type": "string"},
        "frequency": {"type": "string"},
        "timing": {"type": "string"},
    },
    "required": ["name", "form", "dose", "frequency", "timing"],
}

_RISK_SCHEMA = {"type": "string", "enum": [r.value for r in RiskLevel]}

REPORT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "riskLevel": _RISK_SCHEMA,
        "clinicalSummary": {"type": "string"},
        "possibleCauses": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "confidence": {"type": "string"},
                },
                "required": ["name"],
            },
        },
        "suggestedMedicines": {"type": "array", "items": _MEDICINE_SCHEMA},
        "recommendedActions": {"type": "array", "items": {"type": "string"}},
        "redFlags": {"type": "array", "items": {"type": "string"}},
        "disclaimer": {"type": "string"},
    },
    "required": [
        "riskLevel",
        "clinicalSummary",
        "possibleCauses",
        "suggestedMedicines",
        "recommendedActions",
        "redFlags",
    ],
}

CHAT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "riskLevel": _RISK_SCHEMA,
        "summary": {
            "type": "string",
            "description": "Main conversational reply, human friendly, 2-3 sentences max",
        },
        "differentialDiagnosis": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "condition": {"type": "string"},
                    "reasoning": {"type": "string"},
                    "confidence": {"type": "number", "description": "0-100 score"},
                },
                "required": ["condition", "reasoning", "confidence"],
            },
        },
        "recommendedActions": {"type": "array", "items": {"type": "string"}},
        "suggestedMedications": {"type": "array", "items": _MEDICINE_SCHEMA},
        "redFlags": {"type": "array", "items": {"type": "string"}},
        "confidenceScore": {"type": "number", "description": "Overall confidence 0-100"},
    },
    "required": [
        "riskLevel",
        "summary",
        "differentialDiagnosis",
        "recommendedActions",
        "confidenceScore",
    ],
}


def _json_schema_format(name: str, schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "json_schema", "json_schema": {"name": name, "schema": schema}}


def _user_content(text: str, image: Optional[ImageAttachment]):
    if image is None:
        return text
    return [
        {"type": "text", "text": text},
        {"type": "image_url", "image_url": {"url": image.data_url()}},
    ]


async def _complete(
    client,
    system_prompt: str,
    user_content,
    temperature: float,
    response_format: Optional[Dict[str, Any]] = None,
) -> str:
    kwargs: Dict[str, Any] = {}
    if response_format is not None:
        kwargs["response_format"] = response_format

    completion = await client.chat.completions.create(
        model=MODEL_NAME,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        temperature=temperature,
        **kwargs,
    )

    content = completion.choices[0].message.content
    if not content or not content.strip():
        raise ValueError("Empty response from model")
    return content.strip()


def strip_code_fences(text: str) -> str:
    # prefer the first fenced block, wherever the model put it
    block = _FENCED_BLOCK_RE.search(text)
    if block:
        return block.group(1).strip()
    return _FENCE_RE.sub("", text).strip()


def enforce_medicine_safety(result):
    """Drop medicine suggestions from any emergency-risk result.

    Applied after parsing whatever the model returned; the model is asked to
    do the same but is not trusted to.
    """
    if result.riskLevel != RiskLevel.EMERGENCY:
        return result
    if isinstance(result, ReportPayload):
        return result.model_copy(update={"suggestedMedicines": []})
    if isinstance(result, StructuredAIResponse):
        return result.model_copy(update={"suggestedMedications": []})
    raise TypeError(f"Unsupported result type: {type(result).__name__}")


def _is_access_denied(exc: Exception) -> bool:
    return getattr(exc, "status_code", None) == 403


# --- report ---

REPORT_SYSTEM_PROMPT = (
    "You are a helpful, safety-conscious medical AI assistant. "
    "You provide information for educational and informational purposes only. "
    "You are not a doctor."
)


def build_report_prompt(
    patient: PatientDetails,
    clinical_context: str,
    has_image: bool,
    health_context: str = "",
) -> str:
    age = patient.ageGroup.value
    if patient.ageYears is not None:
        age = f"{age}, {patient.ageYears} years"

    prompt = (
        "You are an expert medical consultant and senior radiologist AI. Analyze the "
        "patient details, clinical context and optional medical image below and "
        "produce a structured medical report.\n\n"
        "--- PATIENT DETAILS ---\n"
        f"- Name: {patient.name or 'Not provided'}\n"
        f"- Age: {age}\n"
        f"- Sex: {patient.sex.value}\n"
        f"- Symptom Type: {patient.symptomType.value}\n"
        f"- Duration: {patient.duration.value}\n"
        f"- Pain Severity: {patient.painSeverity.value}\n\n"
        "--- CLINICAL CONTEXT ---\n"
        f"{clinical_context.strip() or 'No additional context provided.'}\n\n"
        "--- REQUESTED OUTPUT FOCUS ---\n"
        f"{patient.reportFocus.value}\n\n"
    )
    if health_context:
        prompt += health_context.strip() + "\n\n"

    prompt += (
        "--- INSTRUCTIONS ---\n"
        + (
            "- An image is attached: describe the findings as a radiologist would in the clinical summary.\n"
            if has_image
            else "- No image is attached.\n"
        )
        + "- riskLevel is one of: low, moderate, emergency.\n"
        "- possibleCauses are ordered by likelihood, with a short confidence such as '60%'.\n"
        "- suggestedMedicines are over-the-counter only, with form, dose, frequency and timing.\n"
        "- If riskLevel is emergency, suggestedMedicines MUST be an empty list.\n"
        "- recommendedActions are home-care and follow-up steps; redFlags say when to see a doctor.\n"
        "- Use cautious language ('suggests', 'is consistent with'). Never claim certainty.\n"
        "- Respond with ONLY a JSON object matching the schema."
    )
    return prompt


def finalize_report(payload: ReportPayload, patient: PatientDetails) -> ReportPayload:
    updates: Dict[str, Any] = {
        "patient": payload.patient.model_copy(
            update={
                "name": patient.name or payload.patient.name,
                "ageYears": patient.ageYears if patient.ageYears is not None else payload.patient.ageYears,
                "sex": patient.sex.value,
            }
        ),
    }
    if not payload.reportId:
        updates["reportId"] = f"rep-{new_id()[:12]}"
    if payload.generatedAt is None:
        updates["generatedAt"] = utcnow()
    if not payload.disclaimer:
        updates["disclaimer"] = DEFAULT_DISCLAIMER
    return enforce_medicine_safety(payload.model_copy(update=updates))


async def generate_report(
    patient: PatientDetails,
    clinical_context: str = "",
    image: Optional[ImageAttachment] = None,
    health_context: str = "",
    client=None,
) -> ReportPayload:
    prompt = build_report_prompt(patient, clinical_context, image is not None, health_context)

    try:
        client = client or get_async_client()
        raw = await _complete(
            client,
            REPORT_SYSTEM_PROMPT,
            _user_content(prompt, image),
            temperature=0.4,
            response_format=_json_schema_format("medical_report", REPORT_SCHEMA),
        )
        payload = ReportPayload.model_validate(json.loads(strip_code_fences(raw)))
    except Exception as e:
        logger.error("Report generation failed: %s", e, exc_info=True)
        if _is_access_denied(e):
            raise ReportGenerationError(ACCESS_DENIED_MESSAGE, status_code=403) from e
        raise ReportGenerationError(REPORT_FAILED_MESSAGE) from e

    return finalize_report(payload, patient)


# --- chat ---

CHAT_SYSTEM_PROMPT = (
    "You are an AI Clinical Assistant. Provide a helpful, accurate, and safe medical "
    "response. Return your answer strictly as a JSON object adhering to the schema. "
    "Do not diagnose definitively. Suggest over-the-counter medicines only, and none "
    "at all when riskLevel is emergency."
)


def chat_fallback() -> StructuredAIResponse:
    return StructuredAIResponse(
        riskLevel=RiskLevel.MODERATE,
        summary=CHAT_FALLBACK_SUMMARY,
        differentialDiagnosis=[],
        recommendedActions=["Consult a doctor", "Try again later"],
        suggestedMedications=[],
        redFlags=[],
        confidenceScore=0,
    )


def build_chat_prompt(session: ChatSession, message: str, health_context: str = "") -> str:
    history = "\n".join(
        f"{m.role.value.upper()}: {m.text}" for m in session.messages
    )
    prompt = (
        "Patient Profile:\n"
        f"{json.dumps(session.patientSummary.model_dump(mode='json'), ensure_ascii=False, indent=2)}\n\n"
    )
    if health_context:
        prompt += health_context.strip() + "\n\n"
    prompt += (
        "History of present conversation:\n"
        f"{history or '(no previous messages)'}\n\n"
        f"Current User Query: {message}"
    )
    return prompt


async def chat(
    session: ChatSession,
    message: str,
    image: Optional[ImageAttachment] = None,
    health_context: str = "",
    client=None,
) -> StructuredAIResponse:
    try:
        client = client or get_async_client()
        raw = await _complete(
            client,
            CHAT_SYSTEM_PROMPT,
            _user_content(build_chat_prompt(session, message, health_context), image),
            temperature=0.2,
            response_format=_json_schema_format("clinical_chat_reply", CHAT_SCHEMA),
        )
        response = StructuredAIResponse.model_validate(json.loads(strip_code_fences(raw)))
    except Exception as e:
        logger.error("Chat AI call failed, using fallback: %s", e, exc_info=True)
        return chat_fallback()

    return enforce_medicine_safety(response)


# --- care finder ---

PLACES_SYSTEM_PROMPT = (
    "You help people find nearby healthcare facilities. "
    "You answer with a JSON array only, no prose and no markdown."
)


def build_places_prompt(
    lat: float,
    lng: float,
    place_filter: PlaceFilter,
    radius_km: float,
    manual_location: Optional[str] = None,
) -> str:
    if manual_location:
        location = f"the area described as: {manual_location}"
    else:
        location = f"latitude {lat}, longitude {lng}"

    return (
        f"List real {describe_filter(place_filter)} within {radius_km} km of {location}.\n\n"
        "FORMAT REQUIREMENTS (VERY IMPORTANT):\n"
        "- Respond with ONLY a JSON array of up to 10 objects.\n"
        "- Each object has the keys: \"id\", \"name\", \"type\" (Hospital, Pharmacy, Clinic or Other), "
        "\"address\", \"distanceKm\" (number), \"rating\" (number or null), \"userRatingsTotal\", "
        "\"isOpenNow\" (boolean or null), \"openingHours\", \"phoneNumber\", \"googleMapsUrl\", "
        "\"summary\" (one short sentence), \"coordinates\" ({\"lat\", \"lng\"}), "
        "\"priorityScore\" (0-100, higher for closer, open, well-rated places with emergency care).\n"
        "- Mark at most one object with \"isTopRecommendation\": true.\n"
        "- Do NOT include any text outside the JSON."
    )


def parse_places(raw: str) -> List[CarePlace]:
    data = json.loads(strip_code_fences(raw))
    if isinstance(data, dict) and isinstance(data.get("places"), list):
        data = data["places"]
    if not isinstance(data, list):
        raise ValueError("Places output is not a list")

    places: List[CarePlace] = []
    for i, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            continue
        try:
            place = CarePlace.model_validate(item)
        except ValidationError as e:
            logger.debug("Skipping malformed place %s: %s", i, e)
            continue

        updates: Dict[str, Any] = {}
        if not place.id:
            updates["id"] = f"place-{i}"
        if not place.googleMapsUrl:
            updates["googleMapsUrl"] = build_maps_url(place.name, place.address)
        places.append(place.model_copy(update=updates) if updates else place)
    return places


async def find_nearby_places(
    lat: float,
    lng: float,
    place_filter: PlaceFilter = PlaceFilter.BOTH,
    radius_km: float = 5,
    manual_location: Optional[str] = None,
    client=None,
) -> List[CarePlace]:
    try:
        client = client or get_async_client()
        raw = await _complete(
            client,
            PLACES_SYSTEM_PROMPT,
            build_places_prompt(lat, lng, place_filter, radius_km, manual_location),
            temperature=0.2,
        )
        return parse_places(raw)
    except Exception as e:
        logger.error("Nearby place search failed: %s", e, exc_info=True)
        return []


# --- family alert ---

FAMILY_SYSTEM_PROMPT = (
    "You write short, calm health updates that a patient sends to family members. "
    "Never add medical facts that are not in the summary."
)


def fallback_family_message(summary: str, patient_name: str) -> str:
    return f"Health update from {patient_name}: {summary}\n\nI will keep you posted."


async def translate_family_message(
    summary: str,
    patient_name: str,
    language: str,
    client=None,
) -> str:
    user_message = (
        f"Write a warm, reassuring message from {patient_name} to a family member, "
        f"in {language}, based on this health summary:\n\n"
        f"{summary}\n\n"
        "Keep it under 80 words, suitable for WhatsApp or SMS. "
        "Reply with the message text only."
    )
    try:
        client = client or get_async_client()
        return await _complete(client, FAMILY_SYSTEM_PROMPT, user_message, temperature=0.4)
    except Exception as e:
        logger.error("Family message generation failed (%s): %s", language, e)
        return fallback_family_message(summary, patient_name)
