"""LLM calls for lab report drafts and full reports."""

import json
import re
from typing import Dict, List, Optional, Tuple

import openai
from openai import OpenAI
from loguru import logger

from .config import get_config
from .prompts import (
    build_user_input,
    build_draft_prompt,
    build_full_report_prompt,
    new_variation_key,
)
from .schemas import (
    FullReport,
    normalize_full_report,
    placeholder_full_report,
    template_full_report,
    validate_draft_content,
    DraftValidationError,
)
from .utils import calculate_cost


CONFIG_ERROR_MESSAGE = "AI service configuration error. Please contact support."

_TRAILING_COMMAS = re.compile(r",\s*([}\]])")


class LLMError(Exception):
    """Base class for generation failures."""
    pass


class LLMConfigError(LLMError):
    """Raised when no API key is configured."""
    pass


class LLMResponseError(LLMError):
    """Raised when the model output cannot be parsed."""
    pass


def is_llm_configured() -> bool:
    return bool(get_config().openai_api_key)


def get_openai_client() -> OpenAI:
    """Get configured OpenAI client."""
    config = get_config()
    if not config.openai_api_key:
        raise LLMConfigError(CONFIG_ERROR_MESSAGE)
    return OpenAI(api_key=config.openai_api_key, timeout=config.sd_llm_timeout_seconds)


def call_llm(
    prompt: str,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    response_format: Optional[Dict] = None
) -> Tuple[str, float]:
    """
    Call OpenAI LLM and return response with cost.

    Args:
        prompt: The prompt to send
        model: Model name (defaults to SD_LLM_MODEL)
        temperature: Temperature for generation (defaults to SD_LLM_TEMPERATURE)
        max_tokens: Maximum tokens to generate (defaults to SD_LLM_MAX_TOKENS)
        response_format: Optional response format (e.g., {"type": "json_object"})

    Returns:
        (response_text, cost_usd)
    """
    config = get_config()

    model = model or config.sd_llm_model
    temperature = config.sd_llm_temperature if temperature is None else temperature
    max_tokens = max_tokens or config.sd_llm_max_tokens

    client = get_openai_client()

    call_kwargs = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
        "max_tokens": max_tokens
    }

    if response_format:
        call_kwargs["response_format"] = response_format

    logger.debug(f"Calling LLM: {model}")

    response = client.chat.completions.create(**call_kwargs)

    response_text = response.choices[0].message.content or ""

    prompt_tokens = response.usage.prompt_tokens if response.usage else 0
    completion_tokens = response.usage.completion_tokens if response.usage else 0
    cost = calculate_cost(prompt_tokens, completion_tokens, model)

    logger.debug(f"LLM call complete: {prompt_tokens} + {completion_tokens} tokens, ${cost:.6f}")

    return response_text, cost


def parse_llm_response(response_text: str) -> Optional[dict]:
    """
    Parse LLM response as a JSON object.

    Tries, in order: the raw text, a ```json fenced block, any fenced
    block, then the outermost {...} span. Trailing commas are tolerated.

    Args:
        response_text: Raw response text

    Returns:
        Parsed dict or None if invalid
    """
    if not response_text:
        return None

    candidates = [response_text]

    if "```json" in response_text:
        start = response_text.find("```json") + 7
        end = response_text.find("```", start)
        candidates.append(response_text[start:end if end != -1 else None])
    elif "```" in response_text:
        start = response_text.find("```") + 3
        end = response_text.find("```", start)
        candidates.append(response_text[start:end if end != -1 else None])

    first, last = response_text.find("{"), response_text.rfind("}")
    if first != -1 and last > first:
        candidates.append(response_text[first:last + 1])

    for candidate in candidates:
        candidate = candidate.strip()
        for text in (candidate, _TRAILING_COMMAS.sub(r"\1", candidate)):
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                continue
            if isinstance(data, dict):
                return data

    logger.warning(f"Failed to parse JSON from LLM response: {response_text[:200]}")
    return None


def classify_llm_error(error: Exception) -> Tuple[int, str, str]:
    """
    Map a generation failure to (status_code, error_type, message).

    Used by the draft and report endpoints to build error responses.
    """
    if isinstance(error, LLMConfigError):
        return 500, "configuration_error", CONFIG_ERROR_MESSAGE
    if isinstance(error, DraftValidationError):
        return 422, "validation_error", "Generated draft failed validation. Please try again."
    if isinstance(error, LLMResponseError):
        return 422, "parsing_error", "AI response could not be parsed. Please try again."
    if isinstance(error, openai.RateLimitError):
        return 429, "quota_error", "AI service quota exceeded. Please try again later."
    if isinstance(error, openai.APITimeoutError):
        return 503, "timeout_error", "AI service is currently unavailable (timeout). Please try again later."
    if isinstance(error, openai.APIConnectionError):
        return 503, "network_error", "Unable to reach the AI service. Please try again later."
    if isinstance(error, openai.AuthenticationError):
        return 500, "configuration_error", CONFIG_ERROR_MESSAGE
    if isinstance(error, openai.APIError):
        return 502, "ai_service_error", "AI service returned an error. Please try again later."
    return 500, "internal_error", "Internal server error during generation"


def generate_draft_with_llm(
    parsed_text: str,
    results: str,
    images: Optional[List[dict]] = None,
    model: Optional[str] = None,
) -> Dict:
    """
    Generate a ten-section lab report draft.

    Args:
        parsed_text: Manual text for the session
        results: Student results/observations
        images: Optional uploaded image descriptors ({"name": ...})
        model: Model to use (defaults to SD_LLM_MODEL)

    Returns:
        Dictionary with:
            - draft: Validated draft sections
            - model_used: Model name
            - cost_usd: Cost of the LLM call
            - variation_key: Random key included in the prompt
            - prompt_preview: First 1000 characters of the prompt

    Raises:
        LLMConfigError: No API key configured
        LLMResponseError: Output is not a JSON object
        DraftValidationError: Output is missing required sections
    """
    config = get_config()
    model = model or config.sd_llm_model

    variation_key = new_variation_key()
    prompt = build_draft_prompt(build_user_input(parsed_text, results, variation_key, images))

    logger.info(f"Generating draft with {model} (prompt: {len(prompt)} chars)")

    response_text, cost = call_llm(
        prompt,
        model=model,
        response_format={"type": "json_object"},
    )

    data = parse_llm_response(response_text)
    if data is None:
        raise LLMResponseError("AI response is not valid JSON")

    draft = validate_draft_content(data)

    return {
        "draft": draft,
        "model_used": model,
        "cost_usd": cost,
        "variation_key": variation_key,
        "prompt_preview": prompt[:1000],
    }


def generate_full_report_with_llm(
    parsed_text: str,
    results: str,
    subject: str,
    images: Optional[List[dict]] = None,
    instructions: Optional[str] = None,
    model: Optional[str] = None,
) -> Dict:
    """
    Generate a complete report.

    Without an API key a template-based report is returned instead
    (ai_service == "fallback"). Output that cannot be parsed or validated
    is replaced by a placeholder report.

    Returns:
        Dictionary with content, ai_service, model_used, cost_usd, variation_key
    """
    variation_key = new_variation_key()

    if not is_llm_configured():
        logger.warning("No AI key configured, using template-based full report")
        return {
            "content": template_full_report(parsed_text, results, subject, images),
            "ai_service": "fallback",
            "model_used": None,
            "cost_usd": 0.0,
            "variation_key": variation_key,
        }

    config = get_config()
    model = model or config.sd_llm_model
    prompt = build_full_report_prompt(
        build_user_input(parsed_text, results, variation_key, images),
        instructions,
    )

    logger.info(f"Generating full report with {model} (prompt: {len(prompt)} chars)")

    response_text, cost = call_llm(
        prompt,
        model=model,
        response_format={"type": "json_object"},
    )

    data = parse_llm_response(response_text)
    content = None
    if data is not None:
        try:
            content = FullReport.model_validate(normalize_full_report(data)).model_dump()
        except ValueError as e:
            logger.warning(f"Full report failed schema validation: {e}")

    if content is None:
        content = placeholder_full_report(subject)

    return {
        "content": content,
        "ai_service": "openai",
        "model_used": model,
        "cost_usd": cost,
        "variation_key": variation_key,
    }
