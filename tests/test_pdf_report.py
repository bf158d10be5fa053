import json
from datetime import date, datetime, timezone

from reportlab import rl_config
from reportlab.platypus import Paragraph, Table

from medscan import pdf_report
from medscan.models import (
    ChatMessage,
    ChatSession,
    ReportPatient,
    ReportPayload,
    RiskLevel,
    Role,
    SuggestedMedicine,
)

THREE_MEDICINES = [
    SuggestedMedicine(name="Paracetamol", form="Tablet", dose="500 mg", frequency="Every 6 hours", timing="After food"),
    SuggestedMedicine(name="Cetirizine", form="Tablet", dose="10 mg", frequency="Once daily", timing="Bedtime"),
    SuggestedMedicine(name="Saline spray", form="Spray", dose="2 puffs", frequency="Twice daily", timing="Morning/Evening"),
]


def _payload(risk=RiskLevel.LOW, medicines=THREE_MEDICINES, **extra):
    return ReportPayload(
        reportId="rep-1",
        generatedAt=datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc),
        patient=ReportPatient(name="Ravi Kumar", ageYears=34, sex="Male"),
        riskLevel=risk,
        clinicalSummary="Runny nose & sneezing for 3 days <no fever>.",
        suggestedMedicines=list(medicines),
        recommendedActions=["Steam inhalation"],
        redFlags=["Breathing difficulty"],
        **extra,
    )


def _plain_text(flowables):
    return [f.getPlainText() for f in flowables if isinstance(f, Paragraph)]


def test_low_risk_report_lists_exactly_the_medicines():
    payload = _payload()

    rows = pdf_report.medicine_rows(payload)
    section = pdf_report.build_medicines_section(payload, pdf_report._styles())

    assert rows[0] == ["Medicine", "Dosage", "Timing"]
    assert [row[0] for row in rows[1:]] == [
        "Paracetamol (Tablet)",
        "Cetirizine (Tablet)",
        "Saline spray (Spray)",
    ]
    assert rows[1][1] == "500 mg - Every 6 hours"
    assert any(isinstance(f, Table) for f in section)
    assert pdf_report.EMERGENCY_MEDICINE_NOTICE not in _plain_text(section)


def test_emergency_report_replaces_medicines_with_notice():
    payload = _payload(risk=RiskLevel.EMERGENCY, medicines=[])

    section = pdf_report.build_medicines_section(payload, pdf_report._styles())

    assert pdf_report.medicine_rows(payload) == []
    assert not any(isinstance(f, Table) for f in section)
    assert pdf_report.EMERGENCY_MEDICINE_NOTICE in _plain_text(section)


def test_emergency_notice_even_if_medicines_slipped_through():
    payload = _payload(risk=RiskLevel.EMERGENCY)

    section = pdf_report.build_medicines_section(payload, pdf_report._styles())

    assert pdf_report.EMERGENCY_MEDICINE_NOTICE in _plain_text(section)
    assert not any(isinstance(f, Table) for f in section)


def test_report_story_has_seven_sections():
    story = pdf_report.render_report_story(_payload())
    texts = _plain_text(story)

    for heading in (
        "1. Patient Information",
        "2. Reported Symptoms",
        "3. Possible Causes",
        "4. Suggested Medicines (OTC Only)",
        "5. Home Care Advice",
        "6. When to See a Doctor",
        "7. Medical Disclaimer",
    ):
        assert heading in texts
    assert "Runny nose & sneezing for 3 days <no fever>." in texts


def test_empty_lists_get_neutral_text():
    payload = _payload(medicines=[]).model_copy(update={"recommendedActions": [], "redFlags": []})
    texts = _plain_text(pdf_report.render_report_story(payload))

    assert pdf_report.NO_MEDICINE_NOTICE in texts
    assert "Rest and hydration recommended." in texts
    assert "If symptoms persist or worsen, consult a doctor." in texts
    assert "No specific causes identified." in texts


def test_build_report_pdf_returns_pdf_bytes():
    pdf = pdf_report.build_report_pdf(_payload())

    assert pdf.startswith(b"%PDF")


def test_built_pdf_shows_exactly_the_three_medicines(monkeypatch):
    # uncompressed page streams keep the drawn text readable in the bytes
    monkeypatch.setattr(rl_config, "pageCompression", 0)

    pdf = pdf_report.build_report_pdf(_payload())

    for name in (b"Paracetamol", b"Cetirizine", b"Saline spray"):
        assert pdf.count(name) == 1
    assert b"Medicines omitted" not in pdf


def test_session_pdf_falls_back_to_transcript():
    session = ChatSession(messages=[ChatMessage(role=Role.USER, text="Hello <there>")])

    assert pdf_report.build_session_pdf(session).startswith(b"%PDF")
    assert pdf_report.build_transcript_pdf(ChatSession()).startswith(b"%PDF")


def test_report_filename():
    payload = _payload()

    assert pdf_report.report_filename(payload, "pdf", today=date(2026, 10, 17)) == (
        "MedScan_Report_20261017_Ravi_Kumar.pdf"
    )
    anonymous = payload.model_copy(update={"patient": ReportPatient()})
    assert pdf_report.report_filename(anonymous, "json", today=date(2026, 1, 2)) == (
        "MedScan_Report_20260102_Anon.json"
    )


def test_export_json_is_verbatim():
    payload = _payload()

    exported = json.loads(pdf_report.export_json(payload))

    assert ReportPayload.model_validate(exported) == payload
    assert exported["riskLevel"] == "low"
    assert len(exported["suggestedMedicines"]) == 3
