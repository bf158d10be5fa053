# medscan/consultation.py
"""Chat turn flow on top of the session store and the AI gateway."""
import logging
from typing import Optional, Tuple

from medscan import ai
from medscan.models import (
    ChatMessage,
    ChatSession,
    ImageAttachment,
    PatientDetails,
    PossibleCause,
    ReportPatient,
    ReportPayload,
    Role,
    utcnow,
)
from medscan.storage import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Consultation"
TITLE_LENGTH = 40
CHAT_REPORT_DISCLAIMER = (
    "This report is based on a chat consultation with MedScan AI. "
    "It is not a replacement for professional medical advice."
)


def _title_from(text: str) -> str:
    text = " ".join(text.split())
    if len(text) <= TITLE_LENGTH:
        return text
    return text[: TITLE_LENGTH - 3].rstrip() + "..."


async def send_message(
    sessions: SessionStore,
    session_id: str,
    text: str,
    image: Optional[ImageAttachment] = None,
    health_context: str = "",
    client=None,
) -> ChatSession:
    """Run one chat turn and persist both messages.

    The gateway sees the history as it was before this turn; the new text is
    passed separately as the current query. An unknown session id starts a new
    session under that id.
    """
    session = sessions.get_session(session_id)
    if session is None:
        session = sessions.create_session().model_copy(update={"id": session_id})

    user_message = ChatMessage(
        role=Role.USER,
        text=text,
        attachments=[image.mimeType] if image else [],
    )

    response = await ai.chat(session, text, image, health_context=health_context, client=client)

    assistant_message = ChatMessage(
        role=Role.ASSISTANT,
        text=response.summary,
        structuredResponse=response,
    )

    updates = {
        "messages": session.messages + [user_message, assistant_message],
        "lastUpdated": utcnow(),
    }
    if session.title == DEFAULT_TITLE and text.strip():
        updates["title"] = _title_from(text)

    session = session.model_copy(update=updates)
    sessions.save_session(session)
    logger.info(
        "Session %s: %d messages, confidence %.0f",
        session.id,
        len(session.messages),
        response.confidenceScore,
    )
    return session


def update_patient(
    sessions: SessionStore, session_id: str, patient: PatientDetails
) -> ChatSession:
    session = sessions.get_session(session_id)
    if session is None:
        session = sessions.create_session().model_copy(update={"id": session_id})
    session = session.model_copy(update={"patientSummary": patient, "lastUpdated": utcnow()})
    sessions.save_session(session)
    return session


def latest_assistant_message(session: ChatSession) -> Optional[ChatMessage]:
    for message in reversed(session.messages):
        if message.role == Role.ASSISTANT:
            return message
    return None


def session_to_report(session: ChatSession) -> Optional[ReportPayload]:
    structured = None
    for message in reversed(session.messages):
        if message.role == Role.ASSISTANT and message.structuredResponse is not None:
            structured = message.structuredResponse
            break
    if structured is None:
        return None

    patient = session.patientSummary
    payload = ReportPayload(
        reportId=f"chat-rep-{session.id[-6:]}",
        generatedAt=utcnow(),
        patient=ReportPatient(
            name=patient.name or "Patient",
            ageYears=patient.ageYears,
            sex=patient.sex.value,
        ),
        riskLevel=structured.riskLevel,
        clinicalSummary=structured.summary,
        possibleCauses=[
            PossibleCause(name=d.condition, confidence=f"{d.confidence:.0f}%")
            for d in structured.differentialDiagnosis
        ],
        suggestedMedicines=list(structured.suggestedMedications),
        recommendedActions=list(structured.recommendedActions),
        redFlags=list(structured.redFlags),
        disclaimer=CHAT_REPORT_DISCLAIMER,
        generatedBy="MedScan AI - Clinical Chat",
    )
    return ai.enforce_medicine_safety(payload)


def share_summary(session: ChatSession) -> Tuple[str, str]:
    last = latest_assistant_message(session)
    text = last.text if last else "Checking symptoms"
    summary = (
        "Update on my health:\n"
        "I consulted the Clinical AI.\n"
        f'Summary: "{text}"\n\n'
        "I will keep you posted."
    )
    return summary, session.patientSummary.name.strip() or "Me"
