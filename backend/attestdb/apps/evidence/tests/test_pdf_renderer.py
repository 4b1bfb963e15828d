from __future__ import annotations

import pytest

from attestdb.apps.evidence import pdf_renderer
from attestdb.apps.evidence.repository import EvidenceRepository

TENANT = "acme"


def test_renders_pdf_for_session_abandoned_in_remediation(training_flow, db_session):
    pytest.importorskip("reportlab")
    training_flow.start()
    training_flow.complete_module(0, mc_key="b", free_text_score=0.1)
    training_flow.complete_module(1, mc_key="b", free_text_score=0.1)
    result = training_flow.evaluate()
    training_flow.start()
    training_flow.complete_module(0, mc_key="a", free_text_score=0.9)
    training_flow.abandon()
    evidence = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)
    assert evidence.outcome == "abandoned"
    assert len(evidence.evidence["modules"]) == 4

    document = pdf_renderer.render_evidence_pdf(evidence, "Acme Corp & Sons")

    assert document.startswith(b"%PDF")
    assert len(document) > 1000


def test_answer_line_shows_selected_option_text():
    question = {
        "response_type": "multiple-choice",
        "options": [{"key": "a", "text": "Report it"}],
        "employee_answer": {"selected_option": "a", "score": 1.0},
    }
    assert pdf_renderer._answer_line(question) == "Answer: a. Report it (score 100.0%)"


def test_answer_line_escapes_free_text():
    question = {
        "response_type": "free-text",
        "employee_answer": {"free_text_response": "<b>forward</b> it", "score": 0.25},
    }
    assert pdf_renderer._answer_line(question) == "Response: &lt;b&gt;forward&lt;/b&gt; it (score 25.0%)"


def test_missing_reportlab_is_reported(monkeypatch):
    monkeypatch.setattr(pdf_renderer.importlib.util, "find_spec", lambda name: None)
    with pytest.raises(RuntimeError) as excinfo:
        pdf_renderer._require_reportlab()
    assert "reportlab" in str(excinfo.value)
