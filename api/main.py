"""
Review Sync API

Single FastAPI application with route groups:
- /api/external-reviews: On-demand external review sync (Google, Facebook)
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Configure logging - ensure INFO level logs are visible
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routes import external_reviews

API_VERSION = "1.0.0"

app = FastAPI(
    title="Review Sync API",
    description="External review sync for Google and Facebook",
    version=API_VERSION,
)

# CORS - comma-separated origins, localhost frontend by default
allowed_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "version": API_VERSION}


# Mount routers
app.include_router(external_reviews.router, prefix="/api", tags=["external-reviews"])
