"""Audit API endpoints.

Provides routes for:
- Fingerprinting a single image
- Scoring references against candidates from precomputed fingerprints
- Scoring references against candidates fetched from image sources
- Timestamp-aligned pairwise audits
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from audit_models import AuditResult, CandidateFrame, ReferenceFrame
from audit_scoring import compute_audit_score, compute_pairwise_audit_score
from config import FetchConfig, ScoringConfig
from fingerprint import Fingerprint, MalformedFingerprintError
from fingerprint_fetcher import (
    CandidateSource,
    ReferenceSource,
    build_candidate_frames,
    build_reference_frames,
    decode_data_url,
)
from pixel_hasher import fingerprint_bytes

logger = logging.getLogger(__name__)

router = APIRouter(tags=["audit"])

# Module-level config set by init
_scoring_config = ScoringConfig()
_fetch_config = FetchConfig()

_REMOTE_SOURCE_PREFIXES = ("http://", "https://", "data:")


def init_audit_router(scoring_config: ScoringConfig, fetch_config: FetchConfig):
    """Initialize the audit router with runtime configuration."""
    global _scoring_config, _fetch_config
    _scoring_config = scoring_config
    _fetch_config = fetch_config


# ==================== Pydantic Models ====================


class FingerprintModel(BaseModel):
    """A fingerprint as two 64-character bit strings."""
    gradient_hash: str = Field(description="64-bit gradient hash (dHash) as 0/1 text")
    mean_hash: str = Field(description="64-bit mean hash (pHash) as 0/1 text")


class FingerprintRequest(BaseModel):
    image_url: Optional[str] = Field(None, description="URL to fetch image from")
    image_base64: Optional[str] = Field(None, description="Base64-encoded image data")


class FingerprintResponse(BaseModel):
    gradient_hash: str
    mean_hash: str
    gradient_hex: str
    mean_hex: str


class ReferenceFrameModel(BaseModel):
    label: str
    fingerprint: Optional[FingerprintModel] = Field(None, description="null when the frame could not be hashed")
    weight: float = Field(1.0, ge=0.0, le=1.0)
    metadata: Any = None
    timestamp: Optional[float] = None


class CandidateFrameModel(BaseModel):
    id: str
    fingerprint: Optional[FingerprintModel] = None
    timestamp: Optional[float] = None
    metadata: Any = None


class AuditRequest(BaseModel):
    references: list[ReferenceFrameModel]
    candidates: list[CandidateFrameModel]
    audio_distance: Optional[float] = Field(None, ge=0.0, le=1.0)


class PairwiseAuditRequest(BaseModel):
    references: list[ReferenceFrameModel]
    candidates: list[CandidateFrameModel]
    expected_timestamps: list[float]
    matching_window_sec: float = Field(0.0, ge=0.0)


class ReferenceSourceModel(BaseModel):
    label: str
    source: str = Field(description="http(s) URL or data: URL")
    weight: float = Field(1.0, ge=0.0, le=1.0)
    timestamp: Optional[float] = None
    metadata: Any = None


class CandidateSourceModel(BaseModel):
    id: str
    source: str
    timestamp: Optional[float] = None
    metadata: Any = None


class SourceAuditRequest(BaseModel):
    references: list[ReferenceSourceModel]
    candidates: list[CandidateSourceModel]
    audio_distance: Optional[float] = Field(None, ge=0.0, le=1.0)


class FrameMatchResponse(BaseModel):
    reference_label: str
    best_candidate_id: Optional[str] = None
    visual_distance: float
    is_match: bool
    reference_metadata: Any = None
    candidate_metadata: Any = None


class AuditSignalsResponse(BaseModel):
    visual_distance: float
    temporal_distance: float
    audio_distance: Optional[float] = None


class AuditResponse(BaseModel):
    score: int
    band: str
    signals: AuditSignalsResponse
    best_match_label: Optional[str] = None
    best_match_metadata: Any = None
    best_match_candidate_id: Optional[str] = None
    confidence: float
    frame_details: list[FrameMatchResponse]
    missing_references: list[str]
    missing_candidates: list[str]


# ==================== Helpers ====================


def _to_fingerprint(model: Optional[FingerprintModel]) -> Optional[Fingerprint]:
    if model is None:
        return None
    return Fingerprint.from_bitstrings(model.gradient_hash, model.mean_hash)


def _to_frames(
    references: list[ReferenceFrameModel],
    candidates: list[CandidateFrameModel],
) -> tuple[list[ReferenceFrame], list[CandidateFrame]]:
    try:
        refs = [
            ReferenceFrame(
                label=r.label,
                fingerprint=_to_fingerprint(r.fingerprint),
                weight=r.weight,
                metadata=r.metadata,
                timestamp=r.timestamp,
            )
            for r in references
        ]
        cands = [
            CandidateFrame(
                id=c.id,
                fingerprint=_to_fingerprint(c.fingerprint),
                timestamp=c.timestamp,
                metadata=c.metadata,
            )
            for c in candidates
        ]
    except MalformedFingerprintError as e:
        raise HTTPException(status_code=422, detail=f"Malformed fingerprint: {e}")
    return refs, cands


def _to_response(result: AuditResult) -> AuditResponse:
    return AuditResponse(**result.to_dict())


# ==================== Endpoints ====================


@router.post("/fingerprint", response_model=FingerprintResponse)
async def fingerprint_image_endpoint(request: FingerprintRequest):
    """
    Fingerprint one image.

    Provide either `image_url` or `image_base64`.
    """
    if not request.image_url and not request.image_base64:
        raise HTTPException(
            status_code=400,
            detail="Must provide either image_url or image_base64"
        )

    try:
        if request.image_url and request.image_url.startswith("data:"):
            image_bytes = decode_data_url(request.image_url)
        elif request.image_url:
            async with httpx.AsyncClient(timeout=_fetch_config.timeout_sec) as client:
                response = await client.get(request.image_url)
                response.raise_for_status()
                image_bytes = response.content
        else:
            image_bytes = base64.b64decode(request.image_base64, validate=True)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch image: {e}")
    except (binascii.Error, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid image data: {e}")

    fingerprint = await asyncio.to_thread(fingerprint_bytes, image_bytes)
    if fingerprint is None:
        raise HTTPException(status_code=400, detail="Failed to decode image")

    return FingerprintResponse(**fingerprint.to_dict())


@router.post("/audit", response_model=AuditResponse)
async def audit(request: AuditRequest):
    """Score candidate frames against reference frames from precomputed fingerprints."""
    refs, cands = _to_frames(request.references, request.candidates)
    try:
        result = compute_audit_score(refs, cands, request.audio_distance, _scoring_config)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _to_response(result)


@router.post("/audit/sources", response_model=AuditResponse)
async def audit_sources(request: SourceAuditRequest):
    """
    Fetch and fingerprint image sources, then score them.

    Sources that cannot be fetched or decoded are reported in
    missing_references / missing_candidates instead of failing the request.
    """
    # Local paths are a CLI convenience only; the API never reads server files
    for source in [r.source for r in request.references] + [c.source for c in request.candidates]:
        if not source.startswith(_REMOTE_SOURCE_PREFIXES):
            raise HTTPException(status_code=400, detail=f"Unsupported source: {source[:80]}")

    ref_sources = [
        ReferenceSource(
            label=r.label,
            source=r.source,
            weight=r.weight,
            metadata=r.metadata,
            timestamp=r.timestamp,
        )
        for r in request.references
    ]
    cand_sources = [
        CandidateSource(id=c.id, source=c.source, timestamp=c.timestamp, metadata=c.metadata)
        for c in request.candidates
    ]

    async with httpx.AsyncClient(
        timeout=_fetch_config.timeout_sec,
        follow_redirects=_fetch_config.follow_redirects,
        headers={"User-Agent": _fetch_config.user_agent},
    ) as client:
        refs = await build_reference_frames(ref_sources, _fetch_config, client=client)
        cands = await build_candidate_frames(cand_sources, _fetch_config, client=client)

    try:
        result = compute_audit_score(refs, cands, request.audio_distance, _scoring_config)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _to_response(result)


@router.post("/audit/pairwise", response_model=AuditResponse)
async def audit_pairwise(request: PairwiseAuditRequest):
    """Timestamp-aligned audit over precomputed fingerprints."""
    refs, cands = _to_frames(request.references, request.candidates)
    result = compute_pairwise_audit_score(
        refs,
        cands,
        request.expected_timestamps,
        matching_window_sec=request.matching_window_sec,
        band_config=_scoring_config,
    )
    return _to_response(result)
