import asyncio

from medscan import consultation
from medscan.models import (
    ChatMessage,
    ChatSession,
    Differential,
    ImageAttachment,
    PatientDetails,
    RiskLevel,
    Role,
    StructuredAIResponse,
    SuggestedMedicine,
)
from tests.fakes import make_ai_client


def test_new_session_with_model_outage_gets_fallback_reply(sessions):
    session = sessions.create_session()
    client = make_ai_client(error=ConnectionError("model outage"))

    updated = asyncio.run(
        consultation.send_message(sessions, session.id, "I have a fever and headache", client=client)
    )

    assert len(updated.messages) == 2
    user, assistant = updated.messages
    assert user.role == Role.USER
    assert user.text == "I have a fever and headache"
    assert assistant.role == Role.ASSISTANT
    assert assistant.structuredResponse.confidenceScore == 0
    assert assistant.text == assistant.structuredResponse.summary
    assert sessions.get_session(session.id) == updated
    assert sessions.get_active_session_id() == session.id


def test_send_message_titles_and_bumps_last_updated(sessions):
    session = sessions.create_session()
    sessions.save_session(session)
    client = make_ai_client(
        {"riskLevel": "low", "summary": "Sounds mild.", "differentialDiagnosis": [],
         "recommendedActions": ["Rest"], "confidenceScore": 40}
    )

    updated = asyncio.run(
        consultation.send_message(
            sessions, session.id, "Sore throat since yesterday evening and a mild cough", client=client
        )
    )

    assert updated.title.startswith("Sore throat since yesterday")
    assert len(updated.title) <= consultation.TITLE_LENGTH
    assert updated.lastUpdated >= session.lastUpdated
    assert updated.messages[1].text == "Sounds mild."


def test_gateway_sees_history_before_the_new_message(sessions):
    session = sessions.create_session().model_copy(
        update={"messages": [ChatMessage(role=Role.USER, text="first question")]}
    )
    sessions.save_session(session)
    client = make_ai_client(error=ConnectionError("down"))

    asyncio.run(consultation.send_message(sessions, session.id, "second question", client=client))

    prompt = client.chat.completions.create.await_args.kwargs["messages"][1]["content"]
    assert "USER: first question" in prompt
    assert "USER: second question" not in prompt
    assert "Current User Query: second question" in prompt


def test_send_message_records_image_attachment(sessions):
    image = ImageAttachment(mimeType="image/jpeg", data="AAAA")
    client = make_ai_client(error=ConnectionError("down"))

    updated = asyncio.run(consultation.send_message(sessions, "s1", "", image, client=client))

    assert updated.id == "s1"
    assert updated.title == "New Consultation"
    assert updated.messages[0].attachments == ["image/jpeg"]


def test_update_patient_creates_missing_session(sessions):
    patient = PatientDetails(name="Meera", ageYears=41)

    updated = consultation.update_patient(sessions, "abc", patient)

    assert updated.patientSummary == patient
    assert sessions.get_session("abc").patientSummary.name == "Meera"


def _session_with_reply(risk):
    reply = StructuredAIResponse(
        riskLevel=risk,
        summary="Possible migraine.",
        differentialDiagnosis=[Differential(condition="Migraine", reasoning="Throbbing", confidence=72.4)],
        recommendedActions=["Rest in a dark room"],
        suggestedMedications=[SuggestedMedicine(name="Ibuprofen", form="Tablet", dose="200 mg")],
        redFlags=["Sudden worst headache"],
        confidenceScore=70,
    )
    return ChatSession(
        id="session-123456",
        patientSummary=PatientDetails(name="", ageYears=29),
        messages=[
            ChatMessage(role=Role.USER, text="Bad headache"),
            ChatMessage(role=Role.ASSISTANT, text=reply.summary, structuredResponse=reply),
        ],
    )


def test_session_to_report_maps_latest_reply():
    payload = consultation.session_to_report(_session_with_reply(RiskLevel.LOW))

    assert payload.reportId == "chat-rep-123456"
    assert payload.patient.name == "Patient"
    assert payload.patient.ageYears == 29
    assert payload.clinicalSummary == "Possible migraine."
    assert payload.possibleCauses[0].name == "Migraine"
    assert payload.possibleCauses[0].confidence == "72%"
    assert [m.name for m in payload.suggestedMedicines] == ["Ibuprofen"]
    assert payload.disclaimer == consultation.CHAT_REPORT_DISCLAIMER


def test_session_to_report_applies_emergency_rule():
    session = _session_with_reply(RiskLevel.LOW)
    reply = session.messages[1].structuredResponse.model_copy(
        update={"riskLevel": RiskLevel.EMERGENCY}
    )
    session.messages[1] = session.messages[1].model_copy(update={"structuredResponse": reply})

    payload = consultation.session_to_report(session)

    assert payload.riskLevel == RiskLevel.EMERGENCY
    assert payload.suggestedMedicines == []


def test_session_to_report_without_reply_is_none():
    session = ChatSession(messages=[ChatMessage(role=Role.USER, text="hi")])

    assert consultation.session_to_report(session) is None


def test_share_summary_quotes_latest_reply():
    summary, name = consultation.share_summary(_session_with_reply(RiskLevel.LOW))

    assert 'Summary: "Possible migraine."' in summary
    assert name == "Me"

    empty_summary, _ = consultation.share_summary(ChatSession())
    assert "Checking symptoms" in empty_summary
