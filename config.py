import os
from dotenv import load_dotenv

load_dotenv()

# --- Gemini ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-1.5-flash")
# The quiz prompt is free text, so it can run on a different model than the JSON notes call
GEMINI_QUIZ_MODEL_NAME = os.getenv("GEMINI_QUIZ_MODEL_NAME", GEMINI_MODEL_NAME)

# --- Google OAuth ---
CLIENT_SECRETS_FILE = os.getenv("CLIENT_SECRETS_FILE", "client_secret.json")
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
REDIRECT_URI = os.getenv("REDIRECT_URI")  # Must match exactly in Google Console!
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173/")

SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/classroom.courses.readonly",
    "https://www.googleapis.com/auth/classroom.coursework.students",
    "https://www.googleapis.com/auth/classroom.courseworkmaterials",
    "https://www.googleapis.com/auth/drive.file",
]

# --- Session ---
SESSION_SECRET_KEY = os.getenv("SESSION_SECRET_KEY", "a_default_secret_key")
SESSION_MAX_AGE = int(os.getenv("SESSION_MAX_AGE", str(30 * 24 * 60 * 60)))
SESSION_HTTPS_ONLY = os.getenv("SESSION_HTTPS_ONLY", "false").lower() == "true"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:5174").split(",")
    if origin.strip()
]

# --- Firestore ---
FIREBASE_CREDENTIALS_FILE = os.getenv("FIREBASE_CREDENTIALS_FILE", "firebase-credentials.json")
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "")
FIRESTORE_PROJECT_ID = os.getenv("FIRESTORE_PROJECT_ID") or None

# --- Pipeline ---
MIN_TEXT_LENGTH = 20
MAX_INPUT_CHARS = 120_000
DRIVE_UPLOADS_ENABLED = os.getenv("DRIVE_UPLOADS_ENABLED", "true").lower() == "true"
PUBLISH_CLAIM_TTL_SECONDS = int(os.getenv("PUBLISH_CLAIM_TTL_SECONDS", "300"))

ALLOWED_UPLOAD_MIME_TYPES = {
    "application/pdf",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
