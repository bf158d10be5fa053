# medscan/pdf_report.py
import io
import json
import re
from datetime import date, datetime
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from medscan.consultation import session_to_report
from medscan.models import ChatSession, ReportPayload, RiskLevel, Role

EMERGENCY_MEDICINE_NOTICE = (
    "Medicines omitted due to emergency risk. Please consult a doctor immediately."
)
NO_MEDICINE_NOTICE = "No specific medicines suggested for this condition."
DEFAULT_PDF_DISCLAIMER = (
    "This report is generated by AI for informational purposes only. It does not "
    "constitute a medical diagnosis or prescription. Always consult a qualified "
    "healthcare professional for medical advice, diagnosis, or treatment."
)

HEADER_BLUE = colors.HexColor("#0064A0")


def format_timestamp(ts: Optional[datetime]) -> str:
    if ts is None:
        return "Unknown time"
    return ts.strftime("%Y-%m-%d %H:%M")


def _text(value: str) -> str:
    return escape(value or "")


def _styles():
    styles = getSampleStyleSheet()
    if "SmallGrey" not in styles:
        styles.add(
            ParagraphStyle(
                name="SmallGrey",
                parent=styles["BodyText"],
                fontSize=8,
                textColor=colors.grey,
            )
        )
    if "Section" not in styles:
        styles.add(
            ParagraphStyle(
                name="Section",
                parent=styles["Heading2"],
                textColor=HEADER_BLUE,
            )
        )
    if "Alert" not in styles:
        styles.add(
            ParagraphStyle(
                name="Alert",
                parent=styles["BodyText"],
                fontName="Helvetica-Oblique",
                textColor=colors.HexColor("#C80000"),
            )
        )
    return styles


def _bullets(items: List[str], styles, empty_text: str, style_name: str = "BodyText"):
    if not items:
        return [Paragraph(empty_text, styles["BodyText"])]
    return [Paragraph(f"• {_text(item)}", styles[style_name]) for item in items]


def build_patient_section(payload: ReportPayload, styles):
    patient = payload.patient
    age = f"{patient.ageYears} years" if patient.ageYears is not None else "Not specified"
    data = [
        ["Name:", patient.name or "Anonymous", "Age:", age],
        ["Sex:", patient.sex or "Not specified", "Date:", format_timestamp(payload.generatedAt)],
    ]
    table = Table(data, colWidths=[0.8 * inch, 2.6 * inch, 0.8 * inch, 2.6 * inch])
    table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )
    return [Paragraph("1. Patient Information", styles["Section"]), table, Spacer(1, 10)]


def build_symptoms_section(payload: ReportPayload, styles):
    return [
        Paragraph("2. Reported Symptoms", styles["Section"]),
        Paragraph(_text(payload.clinicalSummary), styles["BodyText"]),
        Spacer(1, 10),
    ]


def build_causes_section(payload: ReportPayload, styles):
    story = [Paragraph("3. Possible Causes", styles["Section"])]
    if not payload.possibleCauses:
        story.append(Paragraph("No specific causes identified.", styles["BodyText"]))
    for cause in payload.possibleCauses:
        line = f"• <b>{_text(cause.name)}</b>"
        if cause.confidence:
            line += f" <font color='grey'>- {_text(cause.confidence)}</font>"
        story.append(Paragraph(line, styles["BodyText"]))
    story.append(Spacer(1, 10))
    return story


def medicine_rows(payload: ReportPayload) -> List[List[str]]:
    """Header plus one row per medicine; empty under emergency risk."""
    if payload.riskLevel == RiskLevel.EMERGENCY or not payload.suggestedMedicines:
        return []
    rows = [["Medicine", "Dosage", "Timing"]]
    for med in payload.suggestedMedicines:
        name = f"{med.name} ({med.form})" if med.form else med.name
        dose = " - ".join(part for part in (med.dose, med.frequency) if part)
        rows.append([name, dose or "-", med.timing or "-"])
    return rows


def build_medicines_section(payload: ReportPayload, styles):
    story = [Paragraph("4. Suggested Medicines (OTC Only)", styles["Section"])]

    if payload.riskLevel == RiskLevel.EMERGENCY:
        story.append(Paragraph(EMERGENCY_MEDICINE_NOTICE, styles["Alert"]))
        story.append(Spacer(1, 10))
        return story

    rows = medicine_rows(payload)
    if not rows:
        story.append(Paragraph(f"<i>{NO_MEDICINE_NOTICE}</i>", styles["BodyText"]))
        story.append(Spacer(1, 10))
        return story

    table = Table(rows, colWidths=[2.6 * inch, 2.4 * inch, 1.8 * inch], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#F0F0F0")),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
                ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.HexColor("#E6E6E6")),
            ]
        )
    )
    story.append(table)
    story.append(Spacer(1, 10))
    return story


def build_home_care_section(payload: ReportPayload, styles):
    story = [Paragraph("5. Home Care Advice", styles["Section"])]
    story.extend(
        _bullets(payload.recommendedActions, styles, "Rest and hydration recommended.")
    )
    story.append(Spacer(1, 10))
    return story


def build_red_flags_section(payload: ReportPayload, styles):
    story = [Paragraph("6. When to See a Doctor", styles["Section"])]
    story.extend(
        _bullets(
            payload.redFlags,
            styles,
            "If symptoms persist or worsen, consult a doctor.",
        )
    )
    story.append(Spacer(1, 16))
    return story


def build_disclaimer_section(payload: ReportPayload, styles):
    hr = Table([[""]], colWidths=[7.0 * inch], rowHeights=[0.4])
    hr.setStyle(TableStyle([("BACKGROUND", (0, 0), (-1, -1), colors.lightgrey)]))
    return [
        hr,
        Spacer(1, 6),
        Paragraph("<b>7. Medical Disclaimer</b>", styles["SmallGrey"]),
        Paragraph(_text(payload.disclaimer or DEFAULT_PDF_DISCLAIMER), styles["SmallGrey"]),
    ]


def render_report_story(payload: ReportPayload):
    styles = _styles()

    story = []
    story.append(Paragraph("Medical Summary Report", styles["Title"]))
    story.append(
        Paragraph(
            f"Generated: {format_timestamp(payload.generatedAt)} · "
            f"Risk level: {payload.riskLevel.value} · {_text(payload.generatedBy)}",
            styles["SmallGrey"],
        )
    )
    story.append(Spacer(1, 16))

    story.extend(build_patient_section(payload, styles))
    story.extend(build_symptoms_section(payload, styles))
    story.extend(build_causes_section(payload, styles))
    story.extend(build_medicines_section(payload, styles))
    story.extend(build_home_care_section(payload, styles))
    story.extend(build_red_flags_section(payload, styles))
    story.extend(build_disclaimer_section(payload, styles))
    return story


def _build(story) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=40,
        leftMargin=40,
        topMargin=50,
        bottomMargin=40,
        title="MedScan Report",
    )
    doc.build(story)
    return buffer.getvalue()


def build_report_pdf(payload: ReportPayload) -> bytes:
    return _build(render_report_story(payload))


def build_transcript_pdf(session: ChatSession) -> bytes:
    styles = _styles()
    story = [Paragraph("Consultation Transcript", styles["Title"]), Spacer(1, 12)]
    if not session.messages:
        story.append(Paragraph("No messages in this consultation yet.", styles["BodyText"]))

    for message in session.messages:
        role_label = "User" if message.role == Role.USER else "Assistant"
        story.append(
            Paragraph(
                f"<b>{role_label}</b> ({format_timestamp(message.timestamp)})",
                styles["BodyText"],
            )
        )
        story.append(Paragraph(_text(message.text), styles["BodyText"]))
        story.append(Spacer(1, 6))
    return _build(story)


def build_session_pdf(session: ChatSession) -> bytes:
    payload = session_to_report(session)
    if payload is None:
        return build_transcript_pdf(session)
    return build_report_pdf(payload)


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", name).strip("_")


def report_filename(payload: ReportPayload, ext: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    name = _safe_name(payload.patient.name) or "Anon"
    return f"MedScan_Report_{today.strftime('%Y%m%d')}_{name}.{ext}"


def export_json(payload: ReportPayload) -> bytes:
    return json.dumps(payload.model_dump(mode="json"), indent=2, ensure_ascii=False).encode("utf-8")
