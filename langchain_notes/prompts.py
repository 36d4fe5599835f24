from langchain_core.prompts import PromptTemplate

# Prompt for the multiple-choice quiz. The reply is free text in a fixed template
# that services.quiz_service.parse_questions reads back.
quiz_generation_template = """
Based on the following educational content, create 5 multiple-choice quiz questions that test understanding of the key concepts. Each question should have 4 options (A, B, C, D) with only one correct answer. Include explanations for why the correct answer is right.

Content: {content}

Format each question as:
Question: [question text]
A) [option A]
B) [option B]
C) [option C]
D) [option D]
Correct Answer: [letter]
Explanation: [explanation]
"""
QUIZ_GENERATION_PROMPT = PromptTemplate(
    input_variables=["content"],
    template=quiz_generation_template,
)
