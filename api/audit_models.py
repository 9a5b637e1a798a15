"""Data models for a single reference/candidate audit run.

All models are immutable values created fresh per comparison. A frame whose
fingerprint is None is missing data: it is left out of matching and reported
separately, never scored as a worst-case distance.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from fingerprint import Fingerprint


class AuditBand(str, Enum):
    """Coarse classification of the quantized audit score."""
    VERIFIED_ORIGINAL = "VERIFIED_ORIGINAL"      # Near-identical
    PLATFORM_CONSISTENT = "PLATFORM_CONSISTENT"  # Compression/transcoding drift
    MODIFIED_CONTENT = "MODIFIED_CONTENT"        # Structural edit
    DIVERGENT_SOURCE = "DIVERGENT_SOURCE"        # Unrelated or heavily altered


@dataclass(frozen=True)
class ReferenceFrame:
    """A frame from the trusted source."""
    label: str
    fingerprint: Optional[Fingerprint]
    weight: float = 1.0  # Reserved; not used by the score
    metadata: Any = None
    timestamp: Optional[float] = None  # Only used by the pairwise audit

    def __post_init__(self):
        if not 0.0 <= self.weight <= 1.0:
            raise ValueError(f"Reference weight must be in [0, 1], got {self.weight}")


@dataclass(frozen=True)
class CandidateFrame:
    """A frame from the untrusted source."""
    id: str
    fingerprint: Optional[Fingerprint]
    timestamp: Optional[float] = None
    metadata: Any = None


@dataclass(frozen=True)
class FrameMatchResult:
    """Best candidate found for one reference frame."""
    reference_label: str
    best_candidate_id: Optional[str]  # None when no candidate was available
    visual_distance: float
    is_match: bool
    reference_metadata: Any = None
    candidate_metadata: Any = None

    def to_dict(self) -> dict:
        return {
            "reference_label": self.reference_label,
            "best_candidate_id": self.best_candidate_id,
            "visual_distance": self.visual_distance,
            "is_match": self.is_match,
            "reference_metadata": self.reference_metadata,
            "candidate_metadata": self.candidate_metadata,
        }


@dataclass(frozen=True)
class AuditSignals:
    """Component distances feeding the composite score, each in [0, 1]."""
    visual_distance: float
    temporal_distance: float
    audio_distance: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "visual_distance": self.visual_distance,
            "temporal_distance": self.temporal_distance,
            "audio_distance": self.audio_distance,
        }


@dataclass(frozen=True)
class AuditResult:
    """Terminal report of one audit run."""
    score: int
    band: AuditBand
    signals: AuditSignals
    best_match_label: Optional[str]
    best_match_metadata: Any
    confidence: float
    frame_details: tuple[FrameMatchResult, ...] = ()
    best_match_candidate_id: Optional[str] = None
    missing_references: tuple[str, ...] = field(default_factory=tuple)
    missing_candidates: tuple[str, ...] = field(default_factory=tuple)

    @property
    def matched_references(self) -> int:
        return sum(1 for d in self.frame_details if d.is_match)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "band": self.band.value,
            "signals": self.signals.to_dict(),
            "best_match_label": self.best_match_label,
            "best_match_metadata": self.best_match_metadata,
            "best_match_candidate_id": self.best_match_candidate_id,
            "confidence": round(self.confidence, 4),
            "frame_details": [d.to_dict() for d in self.frame_details],
            "missing_references": list(self.missing_references),
            "missing_candidates": list(self.missing_candidates),
        }
