"""Prompt templates for draft and full report generation."""

import uuid
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config import get_config


DRAFT_SYSTEM_PROMPT = """You are an academic assistant helping a student draft a lab report.
Generate a structured report with all 10 sections listed below.

Sections 1-6 (write the content):
- title: Descriptive, concise and specific. Use the title given in the manual.
- introduction: Background theory, the problem and the purpose, moving from general to specific. At least 6 sentences.
- objectives: A numbered list. Each point starts with an action verb and is specific and measurable.
- materials: All equipment and reagents listed in the manual. Do not describe their use.
- procedures: Paragraph form, past tense, passive voice, detailed enough to replicate. Clarify unclear manual steps.
- results: Raw and processed data exactly as provided, with labelled tables and sample calculations where available. Do not interpret. Never invent results. If no results were provided write "[STUDENT INPUT REQUIRED - Please add your experimental results and observations here]".

Sections 7-9 (guidance only, never a finished essay, at least 6 sentences each):
- discussion: Tell the student what to reflect on for this specific experiment.
- recommendations: Guide the student to suggest practical improvements to the design and justify them.
- conclusion: Confirm which objectives the student should state were met. No new information.

Section 10:
- references: Exactly 3 standard textbooks relevant to the experiment, in APA format.

Style: vary sentence structure and length, use natural transitions, avoid generic filler. It should read as written by a student.

Output: return ONLY a JSON object with exactly these keys:
title, introduction, objectives, materials, procedures, results, discussion, recommendations, conclusion, references.
Every value is a string. No markdown, no text outside the JSON.
If information is missing, write "[STUDENT INPUT REQUIRED]"."""


FULL_REPORT_DEFAULT_INSTRUCTIONS = "Return only valid JSON."

FULL_REPORT_FORMAT = (
    "Return ONLY valid JSON with keys: {title, introduction, objectives[], materials[], "
    "procedures, results, discussion, conclusion, recommendations[], references[]}. "
    "No markdown, no code fences, no commentary."
)


def load_system_prompt(prompt_file: Optional[str] = None) -> str:
    """
    Load the draft system prompt.

    Uses SD_PROMPT_FILE when it points to a readable file, otherwise the
    built-in prompt.
    """
    prompt_file = prompt_file or get_config().sd_prompt_file

    if prompt_file:
        path = Path(prompt_file)
        if path.is_file():
            logger.debug(f"System prompt loaded from {path}")
            return path.read_text(encoding="utf-8")
        logger.warning(f"Prompt file not found at {path}, using built-in prompt")

    return DRAFT_SYSTEM_PROMPT


def new_variation_key() -> str:
    """Random key included in prompts so repeated generations differ."""
    return str(uuid.uuid4())


def format_images(images: Optional[List[dict]]) -> str:
    if not images:
        return ""

    lines = [f"\n\nUploaded Images ({len(images)} files):"]
    for i, image in enumerate(images, 1):
        name = image.get("name") if isinstance(image, dict) else None
        lines.append(f"{i}. {name or f'Image {i}'}")
    return "\n".join(lines)


def build_user_input(
    parsed_text: str,
    results: str,
    variation_key: str,
    images: Optional[List[dict]] = None,
) -> str:
    """Manual excerpt and results block shared by both prompts."""
    return (
        f"VARIATION_KEY: {variation_key}\n"
        f"Manual Excerpt:\n{parsed_text}\n\n"
        f"Student Results/Observations:\n{results}"
        f"{format_images(images)}"
    )


def build_draft_prompt(user_input: str, system_prompt: Optional[str] = None) -> str:
    system_prompt = system_prompt or load_system_prompt()
    return f"{system_prompt}\n\nInput Data:\n{user_input}"


def build_full_report_prompt(user_input: str, instructions: Optional[str] = None) -> str:
    instructions = (instructions or "").strip() or FULL_REPORT_DEFAULT_INSTRUCTIONS
    return f"{instructions}\n\n{FULL_REPORT_FORMAT}\n\nInput Data:\n{user_input}"
