from functools import lru_cache

from langchain_google_genai import ChatGoogleGenerativeAI

from config import GEMINI_API_KEY, GEMINI_QUIZ_MODEL_NAME


@lru_cache(maxsize=1)
def get_gemini_llm() -> ChatGoogleGenerativeAI:
    """Initializes and returns the LangChain Gemini chat model used for quizzes."""
    if not GEMINI_API_KEY:
        raise ValueError("Gemini API Key not configured. Please check your .env file.")

    # Lower temperature keeps the answer template stable
    return ChatGoogleGenerativeAI(model=GEMINI_QUIZ_MODEL_NAME, google_api_key=GEMINI_API_KEY, temperature=0.4)
