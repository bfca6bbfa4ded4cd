from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from progress_wizard.routes import manual_log, transcript_review
from dotenv import load_dotenv
import logging
import os

load_dotenv()

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    redirect_slashes=False,
    title="Mirae Progress Wizard",
    description="Selection and batch progress-logging workflow for the Mirae API",
    version="1.0.0",
    openapi_tags=[
        {
            "name": "Manual Log",
            "description": "Pick students, subject areas and objectives, then log progress for each",
        },
        {
            "name": "Transcript Review",
            "description": "Confirm AI-matched students and objectives for analyzed transcripts",
        },
    ],
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL") or "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(manual_log.router, prefix="/wizard/manual", tags=["Manual Log"])
app.include_router(transcript_review.router, prefix="/wizard/transcript", tags=["Transcript Review"])
