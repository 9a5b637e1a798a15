"""Configuration for the audit scoring engine and its acquisition layer."""
import os
from dataclasses import dataclass


# Fixed fingerprint protocol constants
HASH_BITS = 64
SCORE_MAX = 1023


@dataclass
class HasherConfig:
    """Pixel hasher geometry. The sampled grid must yield exactly HASH_BITS bits."""
    grid_size: int = 32    # Resample every image to grid_size x grid_size
    hash_size: int = 8     # hash_size x hash_size sample points
    sample_stride: int = 4 # Distance between sample points on the grid

    def __post_init__(self):
        if self.hash_size * self.hash_size != HASH_BITS:
            raise ValueError(f"hash_size {self.hash_size} does not produce {HASH_BITS} bits")
        # Gradient bit reads one pixel to the right of the last sample point
        if (self.hash_size - 1) * self.sample_stride + 1 >= self.grid_size:
            raise ValueError("Sample grid does not fit inside the luminance grid")


@dataclass
class ScoringConfig:
    """Weights and thresholds for the audit score. All values are tunable."""

    # Per-pair fusion of the two fingerprint signals
    gradient_weight: float = 0.6
    mean_weight: float = 0.4

    # A reference counts as matched when its best fused distance is <= this
    match_threshold: float = 0.25  # ~16 of 64 bits

    # Visual-only composite
    visual_weight: float = 0.65
    temporal_weight: float = 0.35

    # Multi-modal composite (audio distance supplied)
    multimodal_visual_weight: float = 0.45
    multimodal_audio_weight: float = 0.35
    multimodal_temporal_weight: float = 0.20

    # Quantization
    score_max: int = SCORE_MAX

    # Band upper bounds (inclusive) on the quantized score
    verified_original_max: int = 30
    platform_consistent_max: int = 120
    modified_content_max: int = 300

    def __post_init__(self):
        _check_weights("fusion", self.gradient_weight, self.mean_weight)
        _check_weights("visual-only", self.visual_weight, self.temporal_weight)
        _check_weights(
            "multi-modal",
            self.multimodal_visual_weight,
            self.multimodal_audio_weight,
            self.multimodal_temporal_weight,
        )
        if not 0.0 <= self.match_threshold <= 1.0:
            raise ValueError(f"match_threshold must be in [0, 1], got {self.match_threshold}")
        if not (
            0 <= self.verified_original_max
            < self.platform_consistent_max
            < self.modified_content_max
            <= self.score_max
        ):
            raise ValueError("Band thresholds must be ascending and within the score range")

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        return cls(
            match_threshold=float(os.environ.get("AUDIT_MATCH_THRESHOLD", "0.25")),
            verified_original_max=int(os.environ.get("AUDIT_BAND_VERIFIED_MAX", "30")),
            platform_consistent_max=int(os.environ.get("AUDIT_BAND_PLATFORM_MAX", "120")),
            modified_content_max=int(os.environ.get("AUDIT_BAND_MODIFIED_MAX", "300")),
        )


@dataclass
class PairwiseScoringConfig:
    """Weights for the timestamp-aligned pairwise audit."""
    match_threshold: float = 0.25
    visual_weight: float = 0.8
    temporal_weight: float = 0.2
    score_max: int = 1000

    def __post_init__(self):
        _check_weights("pairwise", self.visual_weight, self.temporal_weight)


@dataclass
class FetchConfig:
    """Image fetching for fingerprint generation."""
    timeout_sec: float = 15.0         # Per-source budget, covers fetch and decode
    max_concurrent_fetches: int = 8
    user_agent: str = "signet-audit/0.4"
    follow_redirects: bool = True

    @classmethod
    def from_env(cls) -> "FetchConfig":
        return cls(
            timeout_sec=float(os.environ.get("FETCH_TIMEOUT_SEC", "15")),
            max_concurrent_fetches=int(os.environ.get("FETCH_MAX_CONCURRENT", "8")),
        )


@dataclass
class ServerConfig:
    """Sidecar server configuration."""
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            host=os.environ.get("AUDIT_HOST", "0.0.0.0"),
            port=int(os.environ.get("AUDIT_PORT", "5000")),
            log_level=os.environ.get("LOG_LEVEL", "info").lower(),
        )


def _check_weights(name: str, *weights: float) -> None:
    if any(w < 0 for w in weights):
        raise ValueError(f"{name} weights must be non-negative: {weights}")
    if abs(sum(weights) - 1.0) > 1e-9:
        raise ValueError(f"{name} weights must sum to 1.0, got {sum(weights)}")


DEFAULT_HASHER_CONFIG = HasherConfig()
DEFAULT_SCORING_CONFIG = ScoringConfig()
DEFAULT_PAIRWISE_CONFIG = PairwiseScoringConfig()
DEFAULT_FETCH_CONFIG = FetchConfig()
