"""Pydantic models for generated drafts and full reports.

LLM output is loosely structured: section keys vary ("Aims", "Materials &
Reagents", "Procedure") and values may be strings, lists or objects. The
normalize_* helpers map it onto fixed keys before validation.
"""

import json
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator


STUDENT_INPUT_REQUIRED = "[STUDENT INPUT REQUIRED]"

MAX_SECTION_LENGTH = 10000

DEFAULT_DRAFT_SECTIONS = {
    "objectives": "To investigate the relationship between experimental variables and validate theoretical predictions.",
    "materials": "Materials used in this experiment are listed in the procedures section.",
    "discussion": "The experimental results are discussed in relation to theoretical predictions and potential sources of error.",
    "recommendations": "Suggest practical improvements to the experimental design and explain how they would improve the results.",
    "references": "Lab manual and standard textbooks.",
}

SECTION_ALIASES = {
    "aims": "objectives",
    "objectives_aims": "objectives",
    "aims_objectives": "objectives",
    "objective": "objectives",
    "reagents": "materials",
    "materials_reagents": "materials",
    "materials_and_reagents": "materials",
    "apparatus": "materials",
    "procedure": "procedures",
    "methods": "procedures",
    "method": "procedures",
    "methodology": "procedures",
    "result": "results",
    "observations": "results",
    "recommendation": "recommendations",
    "reference": "references",
    "bibliography": "references",
}

_NON_WORD = re.compile(r"[^a-z0-9]+")
_BRACKETED = re.compile(r"^[\[(].*[\])]$")


class DraftValidationError(ValueError):
    """Raised when generated draft content fails validation."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("Draft validation failed: " + "; ".join(errors))


def canonical_section_key(key: str) -> str:
    """'Materials & Reagents' -> 'materials', 'Procedure' -> 'procedures'."""
    slug = _NON_WORD.sub("_", str(key).strip().lower()).strip("_")
    # "1_title" style numbering
    slug = re.sub(r"^\d+_", "", slug)
    return SECTION_ALIASES.get(slug, slug)


def normalize_section_keys(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map section keys onto canonical names; the first occurrence wins."""
    out: Dict[str, Any] = {}
    for key, value in raw.items():
        canonical = canonical_section_key(key)
        if canonical not in out:
            out[canonical] = value
    return out


def _format_reference(value: Any) -> str:
    if isinstance(value, dict) and value.get("author") and value.get("title"):
        year = value.get("year", "n.d.")
        text = f"{value['author']} ({year}). {value['title']}."
        if value.get("edition"):
            text += f" {value['edition']} ed."
        return text
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def coerce_text(value: Any) -> Optional[str]:
    """Flatten lists and objects into section text; None stays None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(_format_reference(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, indent=2, ensure_ascii=False)
    return str(value)


def coerce_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    items = value if isinstance(value, list) else [value]
    return [item if isinstance(item, str) else json.dumps(item, ensure_ascii=False) for item in items]


# ============================================================================
# Draft
# ============================================================================

class LabReportDraft(BaseModel):
    """Ten-section draft shown to the student before payment."""

    title: str = Field(..., min_length=5, max_length=200)
    introduction: str = Field(..., max_length=MAX_SECTION_LENGTH)
    objectives: str = DEFAULT_DRAFT_SECTIONS["objectives"]
    materials: str = DEFAULT_DRAFT_SECTIONS["materials"]
    procedures: str = Field(..., max_length=MAX_SECTION_LENGTH)
    results: str = Field(..., max_length=MAX_SECTION_LENGTH)
    discussion: str = DEFAULT_DRAFT_SECTIONS["discussion"]
    recommendations: str = DEFAULT_DRAFT_SECTIONS["recommendations"]
    conclusion: str = Field(..., max_length=MAX_SECTION_LENGTH)
    references: str = DEFAULT_DRAFT_SECTIONS["references"]

    @field_validator("title", "introduction", "procedures", "results", "conclusion", mode="before")
    @classmethod
    def required_not_blank(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("cannot be empty")
        return value

    @field_validator("title")
    @classmethod
    def title_not_placeholder(cls, value: str) -> str:
        if _BRACKETED.match(value):
            raise ValueError("appears to be a placeholder")
        return value


def validate_draft_content(raw: Any) -> Dict[str, str]:
    """
    Normalize and validate generated draft content.

    Missing optional sections get defaults; required sections must be
    present, non-empty and at most 10,000 characters; the title must be
    5-200 characters and not a bracketed placeholder.

    Raises:
        DraftValidationError: With one message per failed check
    """
    if not isinstance(raw, dict):
        raise DraftValidationError([f"Draft data must be an object, received: {type(raw).__name__}"])

    sections = normalize_section_keys(raw)
    data = {}
    for name in LabReportDraft.model_fields:
        text = coerce_text(sections.get(name))
        if name in DEFAULT_DRAFT_SECTIONS and (text is None or not text.strip()):
            continue
        if text is not None:
            data[name] = text

    try:
        draft = LabReportDraft.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            section = ".".join(str(part) for part in error["loc"])
            if error["type"] == "missing":
                errors.append(f"Missing required section: {section}")
            else:
                errors.append(f"Section '{section}': {error['msg']}")
        raise DraftValidationError(errors) from e

    return draft.model_dump()


# ============================================================================
# Full report
# ============================================================================

class Reference(BaseModel):
    author: str
    year: Union[str, int]
    title: str
    edition: Optional[str] = None
    page: Optional[str] = None


class FullReport(BaseModel):
    """Complete report returned after payment."""

    title: str
    introduction: str
    objectives: List[str]
    materials: List[str]
    procedures: str
    results: str
    discussion: str
    conclusion: str
    recommendations: List[str]
    references: List[Union[str, Reference]]


def normalize_full_report(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map loosely structured model output onto FullReport's shape."""
    sections = normalize_section_keys(raw or {})

    def text(name: str) -> str:
        value = coerce_text(sections.get(name))
        return value if value else STUDENT_INPUT_REQUIRED

    references = sections.get("references")
    if references is None or references == "":
        references = []
    elif not isinstance(references, list):
        references = [references]

    return {
        "title": text("title"),
        "introduction": text("introduction"),
        "objectives": coerce_list(sections.get("objectives")),
        "materials": coerce_list(sections.get("materials")),
        "procedures": text("procedures"),
        "results": text("results"),
        "discussion": text("discussion"),
        "conclusion": text("conclusion"),
        "recommendations": coerce_list(sections.get("recommendations")),
        "references": references,
    }


def placeholder_full_report(subject: str) -> Dict[str, Any]:
    """Report skeleton used when generated output cannot be validated."""
    return FullReport(
        title=f"{subject} Lab Report",
        introduction=STUDENT_INPUT_REQUIRED,
        objectives=[],
        materials=[],
        procedures=STUDENT_INPUT_REQUIRED,
        results=STUDENT_INPUT_REQUIRED,
        discussion=STUDENT_INPUT_REQUIRED,
        conclusion=STUDENT_INPUT_REQUIRED,
        recommendations=[],
        references=[],
    ).model_dump()


def template_full_report(
    parsed_text: str,
    results: str,
    subject: str,
    images: Optional[List[dict]] = None,
) -> Dict[str, Any]:
    """Template-based report used when no AI service is configured."""
    image_info = f"\n\nUploaded Images: {len(images)} file(s)" if images else ""

    return FullReport(
        title=f"{subject} Lab Report",
        introduction=(
            "The experiment conducted involved systematic analysis of the provided materials and "
            "procedures. The objective was to gather meaningful data and draw scientific conclusions "
            "based on the observations and results obtained during the experimental process."
        ),
        objectives=[
            "Analyze experimental data systematically",
            "Draw scientific conclusions from observations",
            "Document methodology and results comprehensively",
        ],
        materials=["Standard laboratory equipment and materials as specified in the manual"],
        procedures=parsed_text or "Followed standard experimental procedures as outlined in the laboratory manual.",
        results=f"{results}{image_info}",
        discussion=STUDENT_INPUT_REQUIRED,
        conclusion=STUDENT_INPUT_REQUIRED,
        recommendations=[
            "Consider expanding the sample size for more robust results",
            "Implement additional control measures to minimize experimental error",
            "Explore variations in experimental parameters to broaden the scope of findings",
        ],
        references=["[Student should add relevant references here based on the specific experiment and subject matter]"],
    ).model_dump()
