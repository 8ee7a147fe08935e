"""
AI Service for generating study materials using Anthropic Claude.
"""
import json
import re
import time

import anthropic
from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.core.exceptions import GenerationError
from app.core.logging_config import get_logger
from app.schemas.document import StudyMaterials

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = ("english", "arabic")

_LANGUAGE_NAMES = {"english": "English", "arabic": "Arabic"}
_TRUE_FALSE_OPTIONS = {"english": '["True", "False"]', "arabic": '["صحيح", "خطأ"]'}

SYSTEM_PROMPT = (
    "You are an expert educational content creator. You turn course documents into "
    "accurate, well-organized study materials. Always return valid JSON."
)


def get_anthropic_client() -> anthropic.AsyncAnthropic:
    """Get configured Anthropic client with an explicit timeout and bounded retries."""
    if not settings.anthropic_api_key:
        logger.error("Anthropic API key not configured")
        raise ValueError("ANTHROPIC_API_KEY not configured")
    return anthropic.AsyncAnthropic(
        api_key=settings.anthropic_api_key,
        timeout=settings.ai_timeout_seconds,
        max_retries=settings.ai_max_retries,
    )


async def generate_content(
    prompt: str,
    system_prompt: str = SYSTEM_PROMPT,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> str:
    """
    Generate content using Anthropic Claude API.

    Args:
        prompt: The user prompt
        system_prompt: The system context for the AI
        max_tokens: Maximum tokens in response (defaults to settings.ai_max_tokens)
        temperature: Creativity level (0-1, defaults to settings.ai_temperature)

    Returns:
        Generated text content
    """
    max_tokens = max_tokens or settings.ai_max_tokens
    temperature = settings.ai_temperature if temperature is None else temperature

    start_time = time.time()
    logger.info(f"Starting AI content generation | model={settings.claude_model} | max_tokens={max_tokens}")
    logger.debug(f"Prompt length: {len(prompt)} chars")

    try:
        client = get_anthropic_client()

        message = await client.messages.create(
            model=settings.claude_model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[
                {"role": "user", "content": prompt}
            ],
            temperature=temperature,
        )

        duration_ms = (time.time() - start_time) * 1000
        content = message.content[0].text

        logger.info(
            f"AI generation completed | duration={duration_ms:.2f}ms | "
            f"input_tokens={message.usage.input_tokens} | output_tokens={message.usage.output_tokens}"
        )

        return content

    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(f"AI generation failed | duration={duration_ms:.2f}ms | error={str(e)}")
        raise


def strip_json_fences(text: str) -> str:
    """Strip markdown code fences (```json ... ```) from AI responses."""
    stripped = re.sub(r"^```(?:json)?\s*\n?", "", text.strip())
    stripped = re.sub(r"\n?```\s*$", "", stripped)
    return stripped.strip()


def sizing_targets(word_count: int) -> tuple[str, int]:
    """Flashcard range and exam question count requested for a document of this length."""
    if word_count < 500:
        return "5-8", 5
    if word_count <= 2000:
        return "10-15", 8
    return "15-20", 10


def build_study_materials_prompt(text: str, language: str) -> str:
    """Build the single instruction prompt for summary, flashcards and exam questions."""
    language_name = _LANGUAGE_NAMES[language]
    excerpt = text[:settings.ai_input_char_limit]
    flashcard_range, question_count = sizing_targets(len(text.split()))

    return f"""Analyze the following document and create comprehensive study materials in {language_name}.

Document content:
{excerpt}

Generate the following study materials:

1. A summary (1-4 paragraphs based on content length)
2. Flashcards, each with "question" and "answer"
3. Exam questions mixing multiple-choice, true/false and short-answer. Each question must have
   "type", "question", "options", "correctAnswer" and "explanation"

Important rules:
- Adapt the number of flashcards and questions to the content length:
  - Short content (< 500 words): 5-8 flashcards, 5 questions
  - Medium content (500-2000 words): 10-15 flashcards, 8 questions
  - Long content (> 2000 words): 15-20 flashcards, 10 questions
- This document calls for {flashcard_range} flashcards and {question_count} exam questions
- All content must be in {language_name}
- "type" must be exactly one of: "multiple-choice", "true/false", "short-answer"
- For multiple-choice, provide 4 options as full text strings (NOT letters like A, B, C, D)
- CRITICAL: "correctAnswer" MUST be the EXACT full text of the correct option from the "options" array, NOT a letter reference
- For true/false, options must be {_TRUE_FALSE_OPTIONS[language]}
- For short-answer, "options" is an empty array
- Explanations should be brief (1-2 sentences) and reference the material

Return ONLY this JSON structure, with no markdown formatting or other text:
{{
  "summary": "...",
  "flashcards": [{{"question": "...", "answer": "..."}}],
  "examQuestions": [
    {{
      "type": "multiple-choice",
      "question": "What is the main purpose of X?",
      "options": ["Full text of option 1", "Full text of option 2", "Full text of option 3", "Full text of option 4"],
      "correctAnswer": "Full text of option 1",
      "explanation": "Brief explanation here"
    }}
  ]
}}"""


def parse_study_materials(raw: str) -> StudyMaterials:
    """Parse the model's raw text strictly; any deviation is a GenerationError."""
    cleaned = strip_json_fences(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Study materials response is not valid JSON: {e}")
        raise GenerationError("AI response was not valid JSON") from e

    try:
        materials = StudyMaterials.model_validate(data)
    except SchemaValidationError as e:
        logger.error(f"Study materials response has the wrong shape: {e}")
        raise GenerationError("AI response did not match the study materials format") from e

    mismatched = [q for q in materials.exam_questions if not q.answer_matches_option]
    if mismatched:
        logger.warning(f"Dropping {len(mismatched)} exam question(s) with a correctAnswer outside their options")
        materials.exam_questions = [q for q in materials.exam_questions if q.answer_matches_option]
    return materials


async def generate_study_materials(text: str, language: str = "english") -> StudyMaterials:
    """
    Generate a summary, flashcards and exam questions for a document.

    Args:
        text: Extracted document text (only the head is sent to the model)
        language: "english" or "arabic"

    Returns:
        Parsed StudyMaterials

    Raises:
        GenerationError: On any client failure or malformed response
    """
    if language not in SUPPORTED_LANGUAGES:
        raise GenerationError(f"Unsupported language: {language}")

    logger.info(f"Generating study materials | language={language} | chars={len(text)}")
    prompt = build_study_materials_prompt(text, language)

    try:
        raw = await generate_content(prompt)
    except Exception as e:
        raise GenerationError(f"AI service error: {str(e)}") from e

    materials = parse_study_materials(raw)
    logger.info(
        f"Study materials generated | flashcards={len(materials.flashcards)} | "
        f"exam_questions={len(materials.exam_questions)}"
    )
    return materials
