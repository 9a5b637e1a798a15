"""FastAPI sidecar for Signet Audit.

Provides REST API endpoints for:
- Perceptual fingerprinting of images
- Difference/audit scoring of a candidate stream against a reference stream
"""
import logging

from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from audit_router import router as audit_router, init_audit_router
from config import FetchConfig, ScoringConfig, ServerConfig
from frame_extractor import FrameExtractionConfig, check_ffmpeg_available

logger = logging.getLogger(__name__)

API_VERSION = "0.4.0"


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    ffmpeg_available: bool


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration on startup."""
    scoring_config = ScoringConfig.from_env()
    fetch_config = FetchConfig.from_env()
    init_audit_router(scoring_config, fetch_config)
    logger.warning(
        f"Audit engine ready: match_threshold={scoring_config.match_threshold}, "
        f"fetch_timeout={fetch_config.timeout_sec}s, "
        f"max_concurrent_fetches={fetch_config.max_concurrent_fetches}"
    )
    if not check_ffmpeg_available(FrameExtractionConfig.from_env().ffmpeg_path):
        logger.warning("ffmpeg not found - video frame extraction will not work")

    yield


app = FastAPI(
    title="Signet Audit API",
    description="Perceptual difference scoring between reference and candidate media",
    version=API_VERSION,
    lifespan=lifespan,
)

# Enable CORS for browser front-ends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(audit_router)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Check API health."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        ffmpeg_available=check_ffmpeg_available(FrameExtractionConfig.from_env().ffmpeg_path),
    )


if __name__ == "__main__":
    import uvicorn

    server_config = ServerConfig.from_env()
    uvicorn.run(
        app,
        host=server_config.host,
        port=server_config.port,
        log_level=server_config.log_level,
    )
