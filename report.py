"""
Corn Doctor - downloadable diagnosis reports (JSON and PDF)
"""

import json
import logging
from datetime import datetime, timezone

from fpdf import FPDF

logger = logging.getLogger("corn-doctor.report")


def _as_utc(timestamp=None):
    if timestamp is None:
        return datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def report_filename(timestamp, ext="json"):
    millis = int(_as_utc(timestamp).timestamp() * 1000)
    return f"corn-disease-report-{millis}.{ext}"


def build_report(record, timestamp=None) -> dict:
    """Flatten a successful diagnosis plus a timestamp into the export shape."""
    if record.is_error:
        raise ValueError("Cannot export a report for a failed diagnosis")
    return {
        "timestamp": _as_utc(timestamp).isoformat().replace("+00:00", "Z"),
        "disease": record.disease_name,
        "isHealthy": record.is_healthy,
        "advice": record.description,
        "causes": list(record.causes),
        "treatment": list(record.treatment),
        "prevention": list(record.prevention),
    }


def render_json_report(record, timestamp=None) -> bytes:
    payload = build_report(record, timestamp)
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


PDF_PUNCTUATION = str.maketrans({
    "\u2022": "-",
    "\u2013": "-",
    "\u2014": "--",
    "\u2018": "'",
    "\u2019": "'",
    "\u201C": '"',
    "\u201D": '"',
    "\u2026": "...",
    "\u00A0": " ",
})


def pdf_safe(text):
    """Core PDF fonts only draw latin-1; anything else becomes '?'."""
    if not text:
        return ""
    text = str(text).translate(PDF_PUNCTUATION)
    return text.encode("latin-1", "replace").decode("latin-1")


def _write_list(pdf, title, items):
    if not items:
        return
    pdf.set_font('Helvetica', 'B', 12)
    pdf.multi_cell(0, 8, pdf_safe(title), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font('Helvetica', '', 10)
    for item in items:
        pdf.multi_cell(0, 6, pdf_safe(f"- {item}"), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(3)


def render_pdf_report(record, timestamp=None) -> bytes:
    report = build_report(record, timestamp)

    pdf = FPDF(orientation='P', unit='mm', format='A4')
    pdf.add_page()

    pdf.set_font('Helvetica', 'B', 16)
    pdf.cell(0, 10, 'Corn Leaf Diagnosis Report', new_x="LMARGIN", new_y="NEXT", align='C')
    pdf.ln(6)

    pdf.set_font('Helvetica', '', 12)
    pdf.cell(0, 8, pdf_safe(f"Date: {report['timestamp']}"), new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 8, pdf_safe(f"Diagnosis: {report['disease']}"), new_x="LMARGIN", new_y="NEXT")
    status = 'Healthy' if report['isHealthy'] else 'Diseased'
    pdf.cell(0, 8, f"Status: {status}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    pdf.set_font('Helvetica', '', 10)
    pdf.multi_cell(0, 6, pdf_safe(report['advice']), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    if report['isHealthy']:
        _write_list(pdf, 'Care tips:', report['prevention'])
    else:
        _write_list(pdf, 'Causes:', report['causes'])
        _write_list(pdf, 'Treatment:', report['treatment'])
        _write_list(pdf, 'Prevention:', report['prevention'])

    pdf_bytes = bytes(pdf.output())
    logger.info("PDF report generated, size: %d bytes", len(pdf_bytes))
    return pdf_bytes
