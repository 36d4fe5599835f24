import json
import logging

import google.generativeai as genai
from pydantic import ValidationError

from config import GEMINI_API_KEY, GEMINI_MODEL_NAME, MAX_INPUT_CHARS
from schemas.notes import StructuredNotes
from services.errors import GenerationFailure, MalformedResponse

logger = logging.getLogger(__name__)

NOTES_PROMPT = """You are an expert note-making assistant. Read the provided content and produce structured study notes as strict JSON with the following shape:
{
  "title": string,
  "sections": [ { "heading": string, "bullets": string[] } ],
  "key_terms": string[],
  "summary": string,
  "flashcards": [ { "question": string, "answer": string } ]
}
Guidelines:
- Be concise and accurate.
- Organize content into 3-7 sections maximum.
- Use short bullet points per section (3-7 bullets each).
- Create 5-10 flashcards that cover key ideas.
- Do not include any additional keys. Use valid JSON only."""

JSON_GENERATION_CONFIG = {"response_mime_type": "application/json"}


def get_notes_model():
    """Returns the Gemini model used for the JSON notes call."""
    if not GEMINI_API_KEY:
        raise GenerationFailure("Gemini service not configured.")
    genai.configure(api_key=GEMINI_API_KEY)
    return genai.GenerativeModel(GEMINI_MODEL_NAME)


def build_notes_prompt(raw_text: str) -> str:
    # Head-truncate to stay inside the model's input budget
    content = raw_text[:MAX_INPUT_CHARS]
    return f"{NOTES_PROMPT}\n\n---\nCONTENT:\n{content}"


def parse_structured_notes(raw_response: str) -> StructuredNotes:
    """Parses the model reply. Anything but a complete StructuredNotes document is rejected."""
    try:
        payload = json.loads(raw_response)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Gemini notes reply is not valid JSON: %s", e)
        raise MalformedResponse("Failed to parse AI response as JSON") from e

    try:
        return StructuredNotes.model_validate(payload)
    except ValidationError as e:
        logger.warning("Gemini notes reply does not match the notes shape: %s", e.error_count())
        raise MalformedResponse("AI response does not match the expected notes structure") from e


async def generate_structured_notes(raw_text: str, model=None) -> StructuredNotes:
    """Asks Gemini for structured notes on the extracted text.

    Args:
        raw_text: Text pulled out of the uploaded document.
        model: Optional model object exposing ``generate_content_async``;
            defaults to the configured Gemini model.

    Raises:
        GenerationFailure: the API call errored.
        MalformedResponse: the reply is not a valid StructuredNotes document.
    """
    model = model or get_notes_model()
    prompt = build_notes_prompt(raw_text)
    logger.info("Sending notes prompt to Gemini (%d chars).", len(prompt))

    try:
        response = await model.generate_content_async(prompt, generation_config=JSON_GENERATION_CONFIG)
        raw_response = response.text
    except Exception as e:
        logger.error("Gemini notes generation failed: %s", e)
        raise GenerationFailure(f"Failed to get notes from AI: {e}") from e

    notes = parse_structured_notes(raw_response)
    logger.info("Received notes '%s' with %d sections.", notes.title, len(notes.sections))
    return notes
