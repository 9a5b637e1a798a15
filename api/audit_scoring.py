"""Audit scoring: fingerprint fusion, reference matching and banding.

Scores how closely an untrusted candidate stream reproduces a trusted
reference stream. Lower distances mean more similar content.

Pipeline:
1. fused_distance: weighted gradient/mean Hamming distance for one frame pair
2. match_references: greedy nearest candidate for every reference frame
3. compute_audit_score: best global distance + temporal coverage (+ audio)
   folded into a quantized score and a band

Matching is per-reference nearest neighbour, not a global assignment. Several
references may share the same best candidate (e.g. a static scene re-using one
thumbnail).
"""
import logging
import math
from typing import Iterable, Optional, Sequence

from audit_models import (
    AuditBand,
    AuditResult,
    AuditSignals,
    CandidateFrame,
    FrameMatchResult,
    ReferenceFrame,
)
from config import (
    DEFAULT_PAIRWISE_CONFIG,
    DEFAULT_SCORING_CONFIG,
    HASH_BITS,
    PairwiseScoringConfig,
    ScoringConfig,
)
from fingerprint import Fingerprint, hamming_distance

logger = logging.getLogger(__name__)

# Distance reported when a reference has nothing to compare against
WORST_DISTANCE = 1.0


# =============================================================================
# PAIR DISTANCES
# =============================================================================

def normalized_distance(a: int, b: int) -> float:
    """Hamming distance scaled to [0, 1] by the fixed hash width."""
    return hamming_distance(a, b) / HASH_BITS


def fused_distance(
    reference: Fingerprint,
    candidate: Fingerprint,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> float:
    """Weighted combination of gradient and mean hash distances, in [0, 1]."""
    gradient = normalized_distance(reference.gradient_hash, candidate.gradient_hash)
    mean = normalized_distance(reference.mean_hash, candidate.mean_hash)
    return config.gradient_weight * gradient + config.mean_weight * mean


# =============================================================================
# MATCHING
# =============================================================================

def match_reference(
    reference: ReferenceFrame,
    candidates: Sequence[CandidateFrame],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> FrameMatchResult:
    """Find the closest candidate for one reference frame.

    Candidates without a fingerprint are skipped. The first candidate wins on
    ties. With no usable candidate the distance is WORST_DISTANCE and the
    result is not a match.
    """
    if reference.fingerprint is None:
        raise ValueError(f"Reference {reference.label!r} has no fingerprint")

    best: Optional[CandidateFrame] = None
    best_distance = WORST_DISTANCE

    for candidate in candidates:
        if candidate.fingerprint is None:
            continue
        distance = fused_distance(reference.fingerprint, candidate.fingerprint, config)
        if best is None or distance < best_distance:
            best = candidate
            best_distance = distance

    return FrameMatchResult(
        reference_label=reference.label,
        best_candidate_id=best.id if best is not None else None,
        visual_distance=best_distance,
        is_match=best is not None and best_distance <= config.match_threshold,
        reference_metadata=reference.metadata,
        candidate_metadata=best.metadata if best is not None else None,
    )


def match_references(
    references: Sequence[ReferenceFrame],
    candidates: Sequence[CandidateFrame],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> list[FrameMatchResult]:
    """Match every fingerprinted reference independently, preserving order."""
    usable = [c for c in candidates if c.fingerprint is not None]
    return [
        match_reference(ref, usable, config)
        for ref in references
        if ref.fingerprint is not None
    ]


def best_overall_match(results: Iterable[FrameMatchResult]) -> Optional[FrameMatchResult]:
    """Smallest distance across all references; earliest reference wins ties."""
    found = [r for r in results if r.best_candidate_id is not None]
    if not found:
        return None
    return min(found, key=lambda r: r.visual_distance)


# =============================================================================
# AGGREGATION
# =============================================================================

def temporal_distance(results: Sequence[FrameMatchResult]) -> float:
    """Share of references without an acceptable match.

    An empty reference set carries no evidence of drift and scores 0.
    """
    if not results:
        return 0.0
    matched = sum(1 for r in results if r.is_match)
    return 1.0 - matched / len(results)


def composite_distance(
    visual: float,
    temporal: float,
    audio: Optional[float] = None,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> float:
    """Fuse the component distances. Weights depend on whether audio is present."""
    if audio is None:
        return config.visual_weight * visual + config.temporal_weight * temporal
    return (
        config.multimodal_visual_weight * visual
        + config.multimodal_audio_weight * audio
        + config.multimodal_temporal_weight * temporal
    )


def quantize_score(distance: float, score_max: int = DEFAULT_SCORING_CONFIG.score_max) -> int:
    """Scale a [0, 1] distance to an integer in [0, score_max], rounding half up."""
    score = math.floor(distance * score_max + 0.5)
    return max(0, min(score_max, score))


def classify_band(score: int, config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> AuditBand:
    if score <= config.verified_original_max:
        return AuditBand.VERIFIED_ORIGINAL
    elif score <= config.platform_consistent_max:
        return AuditBand.PLATFORM_CONSISTENT
    elif score <= config.modified_content_max:
        return AuditBand.MODIFIED_CONTENT
    else:
        return AuditBand.DIVERGENT_SOURCE


def _validate_audio(audio_distance: Optional[float]) -> None:
    if audio_distance is not None and not 0.0 <= audio_distance <= 1.0:
        raise ValueError(f"audio_distance must be in [0, 1], got {audio_distance}")


def _check_unique_labels(references: Sequence[ReferenceFrame]) -> None:
    seen = set()
    for ref in references:
        if ref.label in seen:
            raise ValueError(f"Duplicate reference label: {ref.label!r}")
        seen.add(ref.label)


def compute_audit_score(
    references: Sequence[ReferenceFrame],
    candidates: Sequence[CandidateFrame],
    audio_distance: Optional[float] = None,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> AuditResult:
    """
    Score a candidate stream against a reference stream.

    Args:
        references: Frames from the trusted source
        candidates: Frames from the untrusted source
        audio_distance: Optional externally computed audio distance in [0, 1]
        config: Weights and thresholds

    Returns:
        AuditResult with the quantized score, band, signals and per-reference
        match details. Frames with a missing fingerprint are listed in
        missing_references / missing_candidates and take no part in scoring.
    """
    _validate_audio(audio_distance)
    _check_unique_labels(references)

    details = match_references(references, candidates, config)
    best = best_overall_match(details)

    visual = best.visual_distance if best is not None else WORST_DISTANCE
    temporal = temporal_distance(details)
    total = composite_distance(visual, temporal, audio_distance, config)
    score = quantize_score(total, config.score_max)

    result = AuditResult(
        score=score,
        band=classify_band(score, config),
        signals=AuditSignals(
            visual_distance=visual,
            temporal_distance=temporal,
            audio_distance=audio_distance,
        ),
        best_match_label=best.reference_label if best is not None else None,
        best_match_metadata=best.reference_metadata if best is not None else None,
        best_match_candidate_id=best.best_candidate_id if best is not None else None,
        confidence=max(0.0, 1.0 - total),
        frame_details=tuple(details),
        missing_references=tuple(r.label for r in references if r.fingerprint is None),
        missing_candidates=tuple(c.id for c in candidates if c.fingerprint is None),
    )
    logger.info(
        f"Audit: score={result.score} band={result.band.value} "
        f"visual={visual:.3f} temporal={temporal:.3f} "
        f"matched={result.matched_references}/{len(details)}"
    )
    return result


# =============================================================================
# PAIRWISE (TIMESTAMP-ALIGNED) AUDIT
# =============================================================================

def _format_seconds(ts: float) -> str:
    return f"{ts:g}"


def _pick_candidate(
    reference: Optional[ReferenceFrame],
    ts: float,
    by_timestamp: dict[float, CandidateFrame],
    usable: Sequence[CandidateFrame],
    matching_window_sec: float,
) -> Optional[CandidateFrame]:
    # A lone candidate stands in for every slot
    if len(usable) == 1:
        return usable[0]

    candidate = by_timestamp.get(ts)
    if reference is None or matching_window_sec <= 0:
        return candidate

    nearby = [
        c for c in usable
        if c.timestamp is not None and abs(c.timestamp - ts) <= matching_window_sec
    ]
    if not nearby:
        return candidate

    best = nearby[0]
    best_distance = WORST_DISTANCE
    for c in nearby:
        d = normalized_distance(reference.fingerprint.mean_hash, c.fingerprint.mean_hash)
        if d < best_distance:
            best = c
            best_distance = d
    return best


def compute_pairwise_audit_score(
    references: Sequence[ReferenceFrame],
    candidates: Sequence[CandidateFrame],
    expected_timestamps: Sequence[float],
    matching_window_sec: float = 0.0,
    config: PairwiseScoringConfig = DEFAULT_PAIRWISE_CONFIG,
    band_config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> AuditResult:
    """
    Timestamp-aligned audit: each expected timestamp is one slot.

    Each slot pairs the reference captured at that timestamp with the candidate
    at the same timestamp (or, with a matching window, the candidate within
    the window whose mean hash is closest). Only the mean hash is compared,
    since it survives transcoding better than local gradients. A slot with no
    reference or no candidate counts as uncovered at the worst distance.
    """
    usable = [c for c in candidates if c.fingerprint is not None]
    by_timestamp = {c.timestamp: c for c in usable if c.timestamp is not None}
    window = max(0.0, matching_window_sec or 0.0)

    details: list[FrameMatchResult] = []
    distance_sum = 0.0
    matches = 0

    for ts in expected_timestamps:
        reference = next(
            (r for r in references if r.timestamp == ts and r.fingerprint is not None),
            None,
        )
        candidate = _pick_candidate(reference, ts, by_timestamp, usable, window)
        label = reference.label if reference is not None else f"T+{_format_seconds(ts)}s"

        if reference is None or candidate is None:
            details.append(FrameMatchResult(
                reference_label=label,
                best_candidate_id=candidate.id if candidate is not None else None,
                visual_distance=WORST_DISTANCE,
                is_match=False,
                reference_metadata=reference.metadata if reference is not None else None,
                candidate_metadata=candidate.metadata if candidate is not None else None,
            ))
            distance_sum += WORST_DISTANCE
            continue

        distance = normalized_distance(
            reference.fingerprint.mean_hash, candidate.fingerprint.mean_hash
        )
        is_match = distance <= config.match_threshold
        if is_match:
            matches += 1
        distance_sum += distance

        details.append(FrameMatchResult(
            reference_label=label,
            best_candidate_id=candidate.id,
            visual_distance=distance,
            is_match=is_match,
            reference_metadata=reference.metadata,
            candidate_metadata=candidate.metadata,
        ))

    slots = max(1, len(expected_timestamps))
    visual = distance_sum / slots
    temporal = 1.0 - matches / slots
    total = config.visual_weight * visual + config.temporal_weight * temporal
    score = quantize_score(total, config.score_max)

    best = best_overall_match(d for d in details if d.visual_distance < WORST_DISTANCE)

    return AuditResult(
        score=score,
        band=classify_band(score, band_config),
        signals=AuditSignals(visual_distance=visual, temporal_distance=temporal),
        best_match_label=best.reference_label if best is not None else None,
        best_match_metadata=best.reference_metadata if best is not None else None,
        best_match_candidate_id=best.best_candidate_id if best is not None else None,
        confidence=max(0.0, 1.0 - total),
        frame_details=tuple(details),
        missing_references=tuple(r.label for r in references if r.fingerprint is None),
        missing_candidates=tuple(c.id for c in candidates if c.fingerprint is None),
    )
