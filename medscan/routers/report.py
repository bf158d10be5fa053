# medscan/routers/report.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from medscan import ai
from medscan.deps import get_ai_client, get_health_context
from medscan.errors import ReportGenerationError
from medscan.models import ReportPayload, ReportRequest
from medscan.pdf_report import build_report_pdf, export_json, report_filename

router = APIRouter(tags=["report"])


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/report", response_model=ReportPayload)
async def create_report(
    req: ReportRequest,
    client=Depends(get_ai_client),
    health_context: str = Depends(get_health_context),
):
    try:
        return await ai.generate_report(
            req.patientDetails,
            req.clinicalContext,
            req.image,
            health_context=health_context,
            client=client,
        )
    except ReportGenerationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/report/pdf")
def download_report_pdf(payload: ReportPayload):
    return _attachment(
        build_report_pdf(payload),
        "application/pdf",
        report_filename(payload, "pdf"),
    )


@router.post("/report/json")
def download_report_json(payload: ReportPayload):
    return _attachment(
        export_json(payload),
        "application/json",
        report_filename(payload, "json"),
    )
