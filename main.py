import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from auth.auth import router as auth_router
from auth.session_gate import SessionGateMiddleware
from config import CORS_ORIGINS, LOG_LEVEL, REDIRECT_URI, SESSION_HTTPS_ONLY, SESSION_MAX_AGE, SESSION_SECRET_KEY
from routers import classroom_router, logs_router, notes_router, status_router, upload_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# --- App Setup ---
if REDIRECT_URI and REDIRECT_URI.startswith("http://"):
    os.environ["OAUTHLIB_INSECURE_TRANSPORT"] = "1"  # Allow OAuth over HTTP for local dev

app = FastAPI(title="Classroom Notes Backend")

# --- Session Gate (runs inside the session middleware) ---
app.add_middleware(SessionGateMiddleware)

# --- Session Middleware ---
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET_KEY,
    max_age=SESSION_MAX_AGE,
    https_only=SESSION_HTTPS_ONLY,
    same_site="lax",
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Include Routers ---
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(upload_router.router, tags=["uploads"])
app.include_router(notes_router.router, tags=["notes"])
app.include_router(classroom_router.router, tags=["classroom"])
app.include_router(logs_router.router, tags=["logs"])
app.include_router(status_router.router, tags=["status"])


# --- Root endpoint ---
@app.get("/")
async def root():
    return {"message": "Classroom Notes Backend"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
