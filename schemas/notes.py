from pydantic import BaseModel, ConfigDict, Field


class NoteSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    heading: str
    bullets: list[str]


class Flashcard(BaseModel):
    model_config = ConfigDict(extra="forbid")

    question: str
    answer: str


class StructuredNotes(BaseModel):
    """Study notes in the exact shape the notes prompt asks Gemini for.

    Extra keys are rejected so that a reply in a different shape fails
    validation instead of being half-accepted.
    """

    model_config = ConfigDict(extra="forbid")

    title: str
    sections: list[NoteSection]
    key_terms: list[str]
    summary: str
    flashcards: list[Flashcard]


class QuizQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: list[str] = Field(min_length=4, max_length=4)
    correct_answer: str = Field(alias="correctAnswer")
    explanation: str


def render_notes_text(notes: StructuredNotes) -> str:
    """Plain-text rendering used as the Classroom material description."""
    lines = [notes.title, ""]
    for section in notes.sections:
        lines.append(section.heading)
        lines.extend(f"- {bullet}" for bullet in section.bullets)
        lines.append("")
    if notes.key_terms:
        lines.append("Key terms: " + ", ".join(notes.key_terms))
        lines.append("")
    if notes.summary:
        lines.append("Summary")
        lines.append(notes.summary)
        lines.append("")
    if notes.flashcards:
        lines.append("Flashcards")
        for card in notes.flashcards:
            lines.append(f"Q: {card.question}")
            lines.append(f"A: {card.answer}")
    return "\n".join(lines).strip()


def render_quiz_text(questions: list[QuizQuestion]) -> str:
    """Plain-text rendering of the quiz, in the same template the quiz prompt uses."""
    blocks = []
    for number, item in enumerate(questions, start=1):
        options = "\n".join(f"{label}) {text}" for label, text in zip("ABCD", item.options))
        blocks.append(f"{number}. {item.question}\n{options}")
    return "\n\n".join(blocks)
