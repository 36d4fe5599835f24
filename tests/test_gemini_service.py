import json
from types import SimpleNamespace

import pytest

from fakes import sample_notes
from services import gemini_service
from services.errors import GenerationFailure, MalformedResponse


class FakeGeminiModel:
    def __init__(self, reply: str | None = None, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []
        self.generation_config = None

    async def generate_content_async(self, prompt, generation_config=None):
        self.prompts.append(prompt)
        self.generation_config = generation_config
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.reply)


def test_structured_notes_survive_a_json_round_trip():
    notes = sample_notes()
    assert gemini_service.parse_structured_notes(json.dumps(notes.model_dump())) == notes


@pytest.mark.parametrize(
    "payload",
    [
        "Here are your notes: {\"title\": \"x\"}",
        "```json\n{}\n```",
        "",
    ],
)
def test_non_json_reply_is_malformed(payload):
    with pytest.raises(MalformedResponse):
        gemini_service.parse_structured_notes(payload)


def test_reply_missing_a_field_is_malformed():
    data = sample_notes().model_dump()
    del data["flashcards"]
    with pytest.raises(MalformedResponse):
        gemini_service.parse_structured_notes(json.dumps(data))


def test_reply_with_extra_keys_is_malformed():
    data = sample_notes().model_dump()
    data["sections"][0]["level"] = 2
    with pytest.raises(MalformedResponse):
        gemini_service.parse_structured_notes(json.dumps(data))


def test_reply_with_wrong_types_is_malformed():
    data = sample_notes().model_dump()
    data["key_terms"] = "chlorophyll, ATP"
    with pytest.raises(MalformedResponse):
        gemini_service.parse_structured_notes(json.dumps(data))


@pytest.mark.anyio
async def test_generate_structured_notes_uses_json_mode():
    model = FakeGeminiModel(reply=json.dumps(sample_notes().model_dump()))

    notes = await gemini_service.generate_structured_notes("Photosynthesis converts light into energy.", model=model)

    assert notes.title == "Photosynthesis"
    assert model.generation_config == {"response_mime_type": "application/json"}
    assert len(model.prompts) == 1
    assert model.prompts[0].startswith(gemini_service.NOTES_PROMPT)


@pytest.mark.anyio
async def test_input_is_head_truncated():
    model = FakeGeminiModel(reply=json.dumps(sample_notes().model_dump()))

    await gemini_service.generate_structured_notes("#" * 200_000, model=model)

    prompt = model.prompts[0]
    assert prompt.count("#") == gemini_service.MAX_INPUT_CHARS
    assert prompt.endswith("#" * gemini_service.MAX_INPUT_CHARS)


@pytest.mark.anyio
async def test_api_error_is_generation_failure():
    model = FakeGeminiModel(error=RuntimeError("429 quota exceeded"))

    with pytest.raises(GenerationFailure):
        await gemini_service.generate_structured_notes("Some lecture text that is long enough.", model=model)


@pytest.mark.anyio
async def test_bad_reply_is_malformed_not_generation_failure():
    model = FakeGeminiModel(reply="I cannot help with that.")

    with pytest.raises(MalformedResponse):
        await gemini_service.generate_structured_notes("Some lecture text that is long enough.", model=model)


@pytest.mark.anyio
async def test_missing_api_key_is_generation_failure(monkeypatch):
    monkeypatch.setattr(gemini_service, "GEMINI_API_KEY", None)

    with pytest.raises(GenerationFailure):
        await gemini_service.generate_structured_notes("Some lecture text that is long enough.")
