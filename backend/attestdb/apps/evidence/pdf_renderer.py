from __future__ import annotations

import importlib.util
import logging
from io import BytesIO
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from ...errors import InternalError
from . import models

logger = logging.getLogger(__name__)

DOCUMENT_TITLE = "Security Awareness Training Record"

OUTCOME_LABELS = {
    "passed": "PASSED",
    "exhausted": "NOT PASSED (attempts exhausted)",
    "abandoned": "ABANDONED",
}


class EvidenceRenderError(InternalError):
    code = "pdf_render_failed"


def _require_reportlab() -> None:
    if importlib.util.find_spec("reportlab") is None:
        raise RuntimeError(
            "Missing dependency 'reportlab'. Install it with "
            "'pip install -e .' from the repository root."
        )


def _fmt_score(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value * 100:.1f}%"


def _fmt_text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return escape(str(value))


def _answer_line(question: Dict[str, Any]) -> str:
    answer = question.get("employee_answer") or {}
    if question.get("response_type") == "multiple-choice":
        selected = answer.get("selected_option")
        label = selected
        for option in question.get("options") or []:
            if option.get("key") == selected:
                label = f"{selected}. {option.get('text')}"
                break
        return f"Answer: {_fmt_text(label)} (score {_fmt_score(answer.get('score'))})"
    return f"Response: {_fmt_text(answer.get('free_text_response'))} (score {_fmt_score(answer.get('score'))})"


def render_evidence_pdf(evidence: models.TrainingEvidence, tenant_display_name: str) -> bytes:
    """
    Render an evidence record into a printable PDF. The hash printed in the
    footer is the stored `content_hash`; it is not recomputed here.
    """
    _require_reportlab()
    from reportlab.lib import colors  # type: ignore[import-not-found]
    from reportlab.lib.pagesizes import A4  # type: ignore[import-not-found]
    from reportlab.lib.styles import getSampleStyleSheet  # type: ignore[import-not-found]
    from reportlab.lib.units import mm  # type: ignore[import-not-found]
    from reportlab.platypus import (  # type: ignore[import-not-found]
        Paragraph,
        SimpleDocTemplate,
        Spacer,
        Table,
        TableStyle,
    )

    body = evidence.evidence or {}
    session = body.get("session") or {}
    attestation = body.get("policy_attestation") or {}
    outcome = body.get("outcome") or {}
    modules: List[Dict[str, Any]] = body.get("modules") or []

    styles = getSampleStyleSheet()
    small = styles["BodyText"].clone("Small", fontSize=8, leading=10)

    story: List[Any] = [
        Paragraph(escape(DOCUMENT_TITLE), styles["Title"]),
        Paragraph(escape(tenant_display_name), styles["Heading2"]),
        Spacer(1, 4 * mm),
    ]

    info_rows = [
        ["Employee", _fmt_text(session.get("employee_id"))],
        ["Session", _fmt_text(session.get("session_id"))],
        ["Started", _fmt_text(session.get("created_at"))],
        ["Completed", _fmt_text(session.get("completed_at"))],
        ["Attempt", f"{session.get('attempt_number', '-')} of {session.get('total_attempts', '-')}"],
        ["Outcome", OUTCOME_LABELS.get(evidence.outcome, evidence.outcome.upper())],
        ["Aggregate score", _fmt_score(outcome.get("aggregate_score"))],
        ["Pass threshold", _fmt_score(outcome.get("pass_threshold"))],
    ]
    info = Table(info_rows, colWidths=[40 * mm, 120 * mm])
    info.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    story.extend([info, Spacer(1, 4 * mm)])

    weak_areas = outcome.get("weak_areas") or []
    if weak_areas:
        story.append(Paragraph("Weak areas: " + escape(", ".join(weak_areas)), styles["BodyText"]))
        story.append(Spacer(1, 3 * mm))

    score_rows = [["#", "Module", "Score"]]
    for item in outcome.get("module_scores") or []:
        score_rows.append(
            [str(item.get("module_index")), Paragraph(_fmt_text(item.get("title")), small), _fmt_score(item.get("score"))]
        )
    scores = Table(score_rows, colWidths=[10 * mm, 120 * mm, 30 * mm], repeatRows=1)
    scores.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    story.extend([Paragraph("Module scores", styles["Heading3"]), scores, Spacer(1, 4 * mm)])

    for module in modules:
        heading = (
            f"Attempt {module.get('attempt_number')} / Module {module.get('module_index')}: "
            f"{_fmt_text(module.get('title'))} ({_fmt_score(module.get('module_score'))})"
        )
        story.append(Paragraph(heading, styles["Heading4"]))
        for scenario in module.get("scenarios") or []:
            story.append(Paragraph("Scenario: " + _fmt_text(scenario.get("narrative")), small))
            story.append(Paragraph(_answer_line(scenario), small))
        for question in module.get("quiz_questions") or []:
            story.append(Paragraph("Q: " + _fmt_text(question.get("question_text")), small))
            story.append(Paragraph(_answer_line(question), small))
        story.append(Spacer(1, 2 * mm))

    story.append(Paragraph("Policy attestation", styles["Heading3"]))
    for label, key in (
        ("Configuration hash", "config_hash"),
        ("Role profile", "role_profile_id"),
        ("Role profile version", "role_profile_version"),
        ("Application version", "app_version"),
        ("Max attempts", "max_attempts"),
    ):
        story.append(Paragraph(f"{label}: {_fmt_text(attestation.get(key))}", small))

    footer = f"Evidence {evidence.id} | schema v{evidence.schema_version} | SHA-256 {evidence.content_hash}"

    def _draw_footer(canvas, doc) -> None:
        canvas.saveState()
        canvas.setFont("Helvetica", 7)
        canvas.drawString(15 * mm, 10 * mm, footer)
        canvas.drawRightString(A4[0] - 15 * mm, 10 * mm, f"Page {doc.page}")
        canvas.restoreState()

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=15 * mm,
        rightMargin=15 * mm,
        topMargin=15 * mm,
        bottomMargin=18 * mm,
        title=DOCUMENT_TITLE,
        author=tenant_display_name,
    )
    try:
        doc.build(story, onFirstPage=_draw_footer, onLaterPages=_draw_footer)
    except Exception as exc:
        logger.exception("Evidence PDF rendering failed", extra={"evidence_id": evidence.id})
        raise EvidenceRenderError(f"Failed to render evidence {evidence.id}") from exc
    return buffer.getvalue()
