import asyncio
import json

import pytest

VALID_PAYLOAD = {
    "summary": "Photosynthesis converts light into chemical energy.",
    "flashcards": [
        {"question": "Where does photosynthesis happen?", "answer": "In the chloroplasts"},
    ],
    "examQuestions": [
        {
            "type": "multiple-choice",
            "question": "What gas is released?",
            "options": ["Oxygen", "Nitrogen", "Helium", "Argon"],
            "correctAnswer": "Oxygen",
            "explanation": "Water is split and oxygen released.",
        },
        {
            "type": "short-answer",
            "question": "Name the pigment.",
            "options": [],
            "correctAnswer": "Chlorophyll",
            "explanation": "",
        },
    ],
}


# ── Response parsing ─────────────────────────────────────────

class TestParseStudyMaterials:
    def test_plain_json(self, app):
        from app.services.ai_service import parse_study_materials

        materials = parse_study_materials(json.dumps(VALID_PAYLOAD))
        assert materials.summary.startswith("Photosynthesis")
        assert len(materials.flashcards) == 1
        assert materials.exam_questions[0].correct_answer == "Oxygen"

    def test_fenced_json_is_unwrapped(self, app):
        from app.services.ai_service import parse_study_materials

        raw = "```json\n" + json.dumps(VALID_PAYLOAD) + "\n```"
        materials = parse_study_materials(raw)
        assert len(materials.exam_questions) == 2

    def test_bare_fence_is_unwrapped(self, app):
        from app.services.ai_service import strip_json_fences

        assert strip_json_fences('```\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_json_fences('  {"a": 1}  ') == '{"a": 1}'

    def test_malformed_json_raises_generation_error(self, app):
        from app.core.exceptions import GenerationError
        from app.services.ai_service import parse_study_materials

        with pytest.raises(GenerationError) as exc_info:
            parse_study_materials("Here are your materials: {not json")
        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)
        assert exc_info.value.status_code == 500

    def test_wrong_shape_raises_generation_error(self, app):
        from app.core.exceptions import GenerationError
        from app.services.ai_service import parse_study_materials

        with pytest.raises(GenerationError):
            parse_study_materials(json.dumps({"summary": "only a summary"}))

    def test_letter_answer_resolved_to_option_text(self, app):
        from app.services.ai_service import parse_study_materials

        payload = json.loads(json.dumps(VALID_PAYLOAD))
        payload["examQuestions"][0]["correctAnswer"] = "A"
        materials = parse_study_materials(json.dumps(payload))
        assert materials.exam_questions[0].correct_answer == "Oxygen"

    def test_type_aliases_normalized(self, app):
        from app.services.ai_service import parse_study_materials

        payload = json.loads(json.dumps(VALID_PAYLOAD))
        payload["examQuestions"][0]["type"] = "Multiple Choice"
        payload["examQuestions"].append({
            "type": "true_false", "question": "Plants need light.",
            "options": ["True", "False"], "correctAnswer": True,
        })
        materials = parse_study_materials(json.dumps(payload))
        assert materials.exam_questions[0].type == "multiple-choice"
        assert materials.exam_questions[2].type == "true/false"
        assert materials.exam_questions[2].correct_answer == "True"
        assert materials.exam_questions[2].explanation == ""

    def test_answer_outside_options_is_dropped(self, app):
        from app.services.ai_service import parse_study_materials

        payload = json.loads(json.dumps(VALID_PAYLOAD))
        payload["examQuestions"][0]["correctAnswer"] = "Carbon dioxide"
        materials = parse_study_materials(json.dumps(payload))
        assert len(materials.exam_questions) == len(VALID_PAYLOAD["examQuestions"]) - 1
        assert all(q.answer_matches_option for q in materials.exam_questions)
        assert "Carbon dioxide" not in [q.correct_answer for q in materials.exam_questions]

    def test_unmatched_answer_flag(self, app):
        from app.schemas.document import ExamQuestion

        question = ExamQuestion.model_validate({
            "type": "multiple-choice", "question": "Which gas?",
            "options": ["Oxygen", "Nitrogen"], "correctAnswer": "Carbon dioxide",
        })
        assert question.answer_matches_option is False

    def test_serializes_camel_case(self, app):
        from app.services.ai_service import parse_study_materials

        materials = parse_study_materials(json.dumps(VALID_PAYLOAD))
        dumped = materials.model_dump(by_alias=True)
        assert "examQuestions" in dumped
        assert "correctAnswer" in dumped["examQuestions"][0]


# ── Prompt building ──────────────────────────────────────────

@pytest.mark.parametrize("words,expected", [
    (100, ("5-8", 5)),
    (499, ("5-8", 5)),
    (500, ("10-15", 8)),
    (2000, ("10-15", 8)),
    (2001, ("15-20", 10)),
])
def test_sizing_targets(app, words, expected):
    from app.services.ai_service import sizing_targets

    assert sizing_targets(words) == expected


def test_prompt_uses_requested_language(app):
    from app.services.ai_service import build_study_materials_prompt

    english = build_study_materials_prompt("word " * 100, "english")
    arabic = build_study_materials_prompt("word " * 100, "arabic")
    assert "in English" in english
    assert "in Arabic" in arabic
    assert "صحيح" in arabic
    assert "5-8 flashcards" in english


def test_prompt_truncates_document_text(app):
    from app.core.config import settings
    from app.services.ai_service import build_study_materials_prompt

    text = "a" * settings.ai_input_char_limit + "TAIL_MARKER"
    prompt = build_study_materials_prompt(text, "english")
    assert "TAIL_MARKER" not in prompt
    assert "a" * settings.ai_input_char_limit in prompt


# ── End-to-end generation with a stubbed client ──────────────

def test_generate_study_materials_parses_client_output(app, monkeypatch):
    from app.services import ai_service

    captured = {}

    async def fake_generate_content(prompt, *args, **kwargs):
        captured["prompt"] = prompt
        return "```json\n" + json.dumps(VALID_PAYLOAD) + "\n```"

    monkeypatch.setattr(ai_service, "generate_content", fake_generate_content)
    materials = asyncio.run(ai_service.generate_study_materials("Some text " * 20, "arabic"))

    assert materials.flashcards[0].answer == "In the chloroplasts"
    assert "in Arabic" in captured["prompt"]


def test_generate_study_materials_wraps_client_errors(app, monkeypatch):
    from app.core.exceptions import GenerationError
    from app.services import ai_service

    async def failing_generate_content(prompt, *args, **kwargs):
        raise TimeoutError("upstream timed out")

    monkeypatch.setattr(ai_service, "generate_content", failing_generate_content)
    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(ai_service.generate_study_materials("Some text", "english"))
    assert isinstance(exc_info.value.__cause__, TimeoutError)


def test_missing_api_key_is_a_generation_error(app, monkeypatch):
    from app.core.config import settings
    from app.core.exceptions import GenerationError
    from app.services.ai_service import generate_study_materials

    monkeypatch.setattr(settings, "anthropic_api_key", "")
    with pytest.raises(GenerationError):
        asyncio.run(generate_study_materials("Some text", "english"))


def test_unknown_language_rejected(app):
    from app.core.exceptions import GenerationError
    from app.services.ai_service import generate_study_materials

    with pytest.raises(GenerationError):
        asyncio.run(generate_study_materials("Some text", "klingon"))
