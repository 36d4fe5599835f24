import logging
import re

from langchain_core.output_parsers import StrOutputParser

from config import MAX_INPUT_CHARS
from langchain_notes.llms import get_gemini_llm
from langchain_notes.prompts import QUIZ_GENERATION_PROMPT
from schemas.notes import QuizQuestion
from services.errors import GenerationFailure

logger = logging.getLogger(__name__)

QUESTION_MARKER = "Question:"
ANSWER_MARKER = "Correct Answer:"
EXPLANATION_MARKER = "Explanation:"
OPTION_RE = re.compile(r"^[A-D]\)")
OPTION_PREFIX_RE = re.compile(r"^[A-D]\)\s*")
MIN_BLOCK_LINES = 6


async def generate_quiz_text(raw_text: str, llm=None) -> str:
    """Runs the quiz prompt through Gemini and returns the raw template text."""
    try:
        quiz_chain = QUIZ_GENERATION_PROMPT | (llm or get_gemini_llm()) | StrOutputParser()
        quiz_text = await quiz_chain.ainvoke({"content": raw_text[:MAX_INPUT_CHARS]})
    except Exception as e:
        logger.error("Gemini quiz generation failed: %s", e)
        raise GenerationFailure(f"Failed to get quiz questions from AI: {e}") from e

    logger.info("Quiz generation complete (%d chars).", len(quiz_text))
    return quiz_text


def _parse_block(block: str) -> QuizQuestion | None:
    lines = [line.strip() for line in block.split("\n") if line.strip()]
    if len(lines) < MIN_BLOCK_LINES or not lines[0].startswith(QUESTION_MARKER):
        return None

    question = lines[0][len(QUESTION_MARKER):].strip()
    options: list[str] = []
    correct_answer = ""
    explanation = ""

    for line in lines[1:]:
        if OPTION_RE.match(line):
            options.append(OPTION_PREFIX_RE.sub("", line, count=1))
        elif line.startswith(ANSWER_MARKER) and not correct_answer:
            correct_answer = line[len(ANSWER_MARKER):].strip()
        elif line.startswith(EXPLANATION_MARKER) and not explanation:
            explanation = line[len(EXPLANATION_MARKER):].strip()

    if not question or len(options) != 4 or not correct_answer or not explanation:
        return None
    return QuizQuestion(question=question, options=options, correct_answer=correct_answer, explanation=explanation)


def parse_questions(quiz_text: str) -> list[QuizQuestion]:
    """Parses the quiz template into questions.

    Model output here is free text and often slightly off, so a block that
    does not parse cleanly is dropped rather than failing the whole quiz.
    """
    questions: list[QuizQuestion] = []
    dropped = 0
    for block in re.split(rf"(?={QUESTION_MARKER})", quiz_text or ""):
        if not block.strip():
            continue
        parsed = _parse_block(block)
        if parsed is None:
            dropped += 1
            continue
        questions.append(parsed)

    if dropped:
        logger.info("Dropped %d malformed quiz block(s), kept %d.", dropped, len(questions))
    return questions
