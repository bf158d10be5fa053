# medscan/routers/chat.py
from datetime import timedelta, timezone
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from medscan import consultation
from medscan.deps import get_ai_client, get_health_context, get_session_store
from medscan.models import ChatRequest, ChatSession, PatientDetails
from medscan.pdf_report import build_session_pdf
from medscan.storage import SessionStore, group_sessions_by_date

router = APIRouter(prefix="/sessions", tags=["chat"])


def _require(sessions: SessionStore, session_id: str) -> ChatSession:
    session = sessions.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("", response_model=ChatSession)
def create_session(sessions: SessionStore = Depends(get_session_store)):
    return sessions.create_session()


@router.get("", response_model=List[ChatSession])
def list_sessions(sessions: SessionStore = Depends(get_session_store)):
    return sessions.list_sessions()


@router.get("/grouped", response_model=Dict[str, List[ChatSession]])
def list_sessions_grouped(
    utcOffset: int = Query(default=0, ge=-840, le=840),
    sessions: SessionStore = Depends(get_session_store),
):
    """utcOffset is the client's offset from UTC in minutes, e.g. 330 for IST."""
    tz = timezone(timedelta(minutes=utcOffset))
    return group_sessions_by_date(sessions.list_sessions(), tz=tz)


@router.get("/active", response_model=ChatSession)
def get_active_session(sessions: SessionStore = Depends(get_session_store)):
    return sessions.get_last_active_or_new()


@router.get("/{session_id}", response_model=ChatSession)
def get_session(session_id: str, sessions: SessionStore = Depends(get_session_store)):
    return _require(sessions, session_id)


@router.put("/{session_id}/patient", response_model=ChatSession)
def update_patient(
    session_id: str,
    patient: PatientDetails,
    sessions: SessionStore = Depends(get_session_store),
):
    return consultation.update_patient(sessions, session_id, patient)


@router.delete("/{session_id}")
def delete_session(session_id: str, sessions: SessionStore = Depends(get_session_store)):
    if not sessions.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": session_id}


@router.post("/{session_id}/messages", response_model=ChatSession)
async def send_message(
    session_id: str,
    req: ChatRequest,
    sessions: SessionStore = Depends(get_session_store),
    client=Depends(get_ai_client),
    health_context: str = Depends(get_health_context),
):
    return await consultation.send_message(
        sessions,
        session_id,
        req.message,
        req.image,
        health_context=health_context,
        client=client,
    )


@router.get("/{session_id}/pdf")
def download_session_pdf(session_id: str, sessions: SessionStore = Depends(get_session_store)):
    session = _require(sessions, session_id)
    return Response(
        content=build_session_pdf(session),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="MedScan_Chat_{session.id}.pdf"'},
    )


@router.get("/{session_id}/share")
def share_session(session_id: str, sessions: SessionStore = Depends(get_session_store)):
    summary, patient_name = consultation.share_summary(_require(sessions, session_id))
    return {"summary": summary, "patientName": patient_name}
