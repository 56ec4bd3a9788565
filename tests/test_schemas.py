"""Tests for draft validation and full report normalization."""

import httpx
import openai
import pytest

from scidraft.llm import LLMConfigError, LLMResponseError, classify_llm_error
from scidraft.schemas import (
    STUDENT_INPUT_REQUIRED,
    DEFAULT_DRAFT_SECTIONS,
    DraftValidationError,
    canonical_section_key,
    normalize_full_report,
    placeholder_full_report,
    template_full_report,
    validate_draft_content,
)

from conftest import SAMPLE_DRAFT


@pytest.mark.parametrize("key,expected", [
    ("Aims", "objectives"),
    ("Materials & Reagents", "materials"),
    ("Procedure", "procedures"),
    ("1. Title", "title"),
    ("Observations", "results"),
    ("conclusion", "conclusion"),
])
def test_canonical_section_key(key, expected):
    assert canonical_section_key(key) == expected


def test_validate_draft_maps_aliases_and_flattens_values():
    draft = validate_draft_content(SAMPLE_DRAFT)

    assert draft["objectives"] == SAMPLE_DRAFT["Aims"]
    assert draft["materials"].splitlines() == SAMPLE_DRAFT["Materials & Reagents"]
    assert draft["procedures"].startswith("Pipette 25 mL")
    assert draft["references"] == "Vogel (1989). Quantitative Chemical Analysis."
    # Missing optional section falls back to its default
    assert draft["recommendations"] == DEFAULT_DRAFT_SECTIONS["recommendations"]


def test_validate_draft_reports_missing_required_sections():
    with pytest.raises(DraftValidationError) as exc_info:
        validate_draft_content({"title": "A valid title", "introduction": "Intro"})

    errors = exc_info.value.errors
    assert "Missing required section: procedures" in errors
    assert "Missing required section: results" in errors
    assert "Missing required section: conclusion" in errors


def test_validate_draft_rejects_placeholder_title():
    data = dict(SAMPLE_DRAFT, title="[Insert title here]")
    with pytest.raises(DraftValidationError) as exc_info:
        validate_draft_content(data)
    assert any("placeholder" in e for e in exc_info.value.errors)


def test_validate_draft_rejects_short_title_and_blank_sections():
    data = dict(SAMPLE_DRAFT, title="Lab", conclusion="   ")
    with pytest.raises(DraftValidationError) as exc_info:
        validate_draft_content(data)
    sections = " ".join(exc_info.value.errors)
    assert "title" in sections
    assert "conclusion" in sections


def test_validate_draft_accepts_null_hypothesis_text():
    data = dict(SAMPLE_DRAFT, discussion="We fail to reject the null hypothesis.")
    assert validate_draft_content(data)["discussion"].endswith("null hypothesis.")


def test_validate_draft_rejects_non_object():
    with pytest.raises(DraftValidationError):
        validate_draft_content(["title"])


def test_normalize_full_report_fills_missing_sections():
    report = normalize_full_report({"Title": "Osmosis", "Objectives": "Observe osmosis", "references": "Campbell Biology"})

    assert report["title"] == "Osmosis"
    assert report["objectives"] == ["Observe osmosis"]
    assert report["references"] == ["Campbell Biology"]
    assert report["discussion"] == STUDENT_INPUT_REQUIRED
    assert report["materials"] == []


def test_placeholder_and_template_reports():
    placeholder = placeholder_full_report("Physics")
    assert placeholder["title"] == "Physics Lab Report"
    assert placeholder["conclusion"] == STUDENT_INPUT_REQUIRED

    templated = template_full_report("Follow the manual.", "T = 2.01 s", "Physics", images=[{"name": "a.png"}])
    assert templated["procedures"] == "Follow the manual."
    assert templated["results"].endswith("Uploaded Images: 1 file(s)")


def _request():
    return httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


@pytest.mark.parametrize("error,status,error_type", [
    (LLMConfigError("no key"), 500, "configuration_error"),
    (LLMResponseError("bad json"), 422, "parsing_error"),
    (DraftValidationError(["Missing required section: results"]), 422, "validation_error"),
    (openai.APITimeoutError(request=_request()), 503, "timeout_error"),
    (openai.APIConnectionError(request=_request()), 503, "network_error"),
    (RuntimeError("boom"), 500, "internal_error"),
])
def test_classify_llm_error(error, status, error_type):
    got_status, got_type, message = classify_llm_error(error)
    assert (got_status, got_type) == (status, error_type)
    assert message
