"""AI helpers — feedback summaries and survey question suggestions via OpenAI."""

import json
import logging

import httpx
from pydantic import BaseModel, ValidationError

from feedback_flow.core.config import settings
from feedback_flow.schemas.forms import FieldType, OptionDraft

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

SUMMARY_SYSTEM_PROMPT = (
    "You are an analyst summarizing customer feedback collected through a survey. "
    "You will receive a list of free-text answers, one per line. "
    "Write a concise summary (3-6 sentences) covering the key themes, recurring praise, "
    "recurring complaints and any actionable suggestions. "
    "Do not quote individual respondents at length. Return plain text only."
)

QUESTIONS_SYSTEM_PROMPT = (
    "You help people design feedback surveys. Given a topic, or a pasted list of questions, "
    "return a JSON object with a single field \"questions\": a list of question objects.\n"
    "Each question object has:\n"
    '- "label": the question text\n'
    '- "type": one of "text", "textarea", "select", "radio", "checkbox", "rating", '
    '"date", "email", "number", "nps"\n'
    '- "options": a list of {"label": "..."} objects, only for select, radio and checkbox\n\n'
    "Prefer rating and nps questions for satisfaction, choice questions for categories "
    "and textarea for open feedback. Return ONLY the JSON object, no other text."
)


class AIServiceError(Exception):
    """Raised when an AI request fails or returns unusable output."""


class AIFeaturesDisabledError(AIServiceError):
    """Raised when AI features are turned off in settings."""


class SuggestedQuestion(BaseModel):
    label: str
    type: FieldType = FieldType.TEXT
    options: list[OptionDraft] | None = None


async def _chat_completion(system_prompt: str, user_content: str, *, json_mode: bool, max_tokens: int) -> str:
    """Send one chat completion request and return the message content."""
    if not settings.AI_FEATURES_ENABLED:
        raise AIFeaturesDisabledError("AI features are disabled")

    api_key = settings.OPENAI_API_KEY
    if not api_key:
        raise AIServiceError("OPENAI_API_KEY not configured")

    payload = {
        "model": settings.AI_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        "temperature": 0.2,
        "max_tokens": max_tokens,
    }
    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    try:
        async with httpx.AsyncClient(timeout=settings.AI_REQUEST_TIMEOUT_SECONDS) as client:
            response = await client.post(
                OPENAI_CHAT_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
            )
            response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.error("OpenAI API returned %d: %s", exc.response.status_code, exc.response.text)
        raise AIServiceError(f"OpenAI API error: {exc.response.status_code}") from exc
    except httpx.RequestError as exc:
        logger.error("OpenAI API request failed: %s", exc)
        raise AIServiceError(f"OpenAI API request failed: {exc}") from exc

    try:
        data = response.json()
        return data["choices"][0]["message"]["content"].strip()
    except (KeyError, IndexError, TypeError, AttributeError, ValueError) as exc:
        logger.error("Unexpected OpenAI response shape: %s", exc)
        raise AIServiceError(f"Unexpected OpenAI response: {exc}") from exc


async def summarize_feedback(feedback: list[str]) -> str:
    """Summarize free-text survey answers.

    Callers decide what an empty corpus means; this function refuses it.

    Raises:
        AIServiceError: on empty input, missing configuration or API failure.
    """
    texts = [text.strip() for text in feedback if text and text.strip()]
    if not texts:
        raise AIServiceError("No feedback to summarize")

    logger.info("Summarizing %d feedback answers", len(texts))
    content = "\n".join(f"- {text}" for text in texts)
    summary = await _chat_completion(SUMMARY_SYSTEM_PROMPT, content, json_mode=False, max_tokens=500)
    if not summary:
        raise AIServiceError("OpenAI returned an empty summary")
    return summary


async def generate_survey_questions(topic: str) -> list[SuggestedQuestion]:
    """Suggest survey questions for a topic.

    Unknown question types fall back to ``text``; malformed entries are skipped.
    """
    if not topic or not topic.strip():
        raise AIServiceError("Empty topic — cannot suggest questions")

    content = await _chat_completion(QUESTIONS_SYSTEM_PROMPT, topic.strip(), json_mode=True, max_tokens=1500)

    try:
        parsed = json.loads(content)
        raw_questions = parsed["questions"]
        if not isinstance(raw_questions, list):
            raise TypeError("questions is not a list")
    except (KeyError, TypeError, json.JSONDecodeError) as exc:
        logger.error("Failed to parse question suggestions: %s (raw: %s)", exc, content)
        raise AIServiceError(f"Failed to parse question suggestions: {exc}") from exc

    questions: list[SuggestedQuestion] = []
    for raw in raw_questions[: settings.AI_MAX_SUGGESTED_QUESTIONS]:
        if not isinstance(raw, dict):
            continue
        if raw.get("type") not in {t.value for t in FieldType} or raw.get("type") == FieldType.PAGEBREAK.value:
            raw = {**raw, "type": FieldType.TEXT.value}
        if isinstance(raw.get("options"), list):
            raw = {**raw, "options": [{"label": opt} if isinstance(opt, str) else opt for opt in raw["options"]]}
        try:
            question = SuggestedQuestion.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Skipping malformed suggested question %r: %s", raw, exc)
            continue
        if question.label.strip():
            questions.append(question)

    return questions
