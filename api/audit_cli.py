"""Command-line audit of a candidate against reference images.

Usage:
    python audit_cli.py --reference REF [REF ...] --candidate SRC [SRC ...] [options]

Examples:
    # Compare two sets of thumbnails
    python audit_cli.py --reference a1.jpg a2.jpg --candidate https://example.com/b.jpg

    # Sample a re-hosted video once a minute and include an audio distance
    python audit_cli.py --reference start.jpg mid.jpg end.jpg \\
        --candidate-video copy.mp4 --duration PT12M30S --audio-distance 0.1

    # Machine-readable report
    python audit_cli.py --reference a.jpg --candidate b.jpg --json
"""

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import json
import sys

from audit_models import AuditResult, CandidateFrame
from audit_scoring import compute_audit_score
from config import FetchConfig, ScoringConfig
from fingerprint_fetcher import (
    CandidateSource,
    ReferenceSource,
    build_candidate_frames,
    build_reference_frames,
)
from frame_extractor import (
    FrameExtractionConfig,
    build_minute_sampling_timestamps,
    extract_candidate_frames,
    parse_iso8601_duration,
)


def parse_args(args: list[str] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: List of arguments to parse. If None, uses sys.argv.

    Returns:
        Namespace containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Score how closely candidate media reproduces reference media"
    )
    parser.add_argument(
        "--reference",
        nargs="+",
        required=True,
        help="Reference image sources (paths, http(s) URLs or data: URLs)",
    )
    parser.add_argument(
        "--candidate",
        nargs="+",
        default=[],
        help="Candidate image sources",
    )
    parser.add_argument(
        "--candidate-video",
        type=str,
        help="Candidate video (path or URL) to sample with ffmpeg",
    )
    parser.add_argument(
        "--duration",
        type=str,
        help="Candidate video duration, seconds or ISO-8601 (e.g. PT4M13S)",
    )
    parser.add_argument(
        "--sample-offset",
        type=float,
        help="First sample point in seconds (default: SAMPLE_OFFSET_SEC or 7)",
    )
    parser.add_argument(
        "--sample-interval",
        type=float,
        help="Seconds between video samples (default: SAMPLE_INTERVAL_SEC or 60)",
    )
    parser.add_argument(
        "--audio-distance",
        type=float,
        help="External audio distance in [0, 1]",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full report as JSON",
    )
    return parser.parse_args(args)


def parse_duration(value: str) -> float:
    """Accept plain seconds or an ISO-8601 PT duration."""
    if value.upper().startswith("PT"):
        return float(parse_iso8601_duration(value.upper()))
    return float(value)


async def collect_candidates(args: argparse.Namespace, fetch_config: FetchConfig) -> list[CandidateFrame]:
    candidates = await build_candidate_frames(
        [CandidateSource(id=src, source=src) for src in args.candidate],
        fetch_config,
    )
    if args.candidate_video:
        extraction_config = FrameExtractionConfig.from_env()
        if args.sample_offset is not None:
            extraction_config.sample_offset_sec = args.sample_offset
        if args.sample_interval is not None:
            extraction_config.sample_interval_sec = args.sample_interval

        duration = parse_duration(args.duration) if args.duration else 0.0
        timestamps = build_minute_sampling_timestamps(
            duration,
            extraction_config.sample_offset_sec,
            extraction_config.sample_interval_sec,
        )
        extraction = await extract_candidate_frames(
            args.candidate_video, timestamps, extraction_config
        )
        for error in extraction.errors:
            print(f"Warning: {error}", file=sys.stderr)
        candidates.extend(extraction.frames)
    return candidates


async def run_audit(args: argparse.Namespace) -> AuditResult:
    fetch_config = FetchConfig.from_env()
    references = await build_reference_frames(
        [ReferenceSource(label=src, source=src) for src in args.reference],
        fetch_config,
    )
    candidates = await collect_candidates(args, fetch_config)
    return compute_audit_score(
        references, candidates, args.audio_distance, ScoringConfig.from_env()
    )


def format_report(result: AuditResult) -> str:
    """Render a short human-readable report."""
    signals = result.signals
    lines = [
        f"Band:       {result.band.value}",
        f"Score:      {result.score} / 1023",
        f"Confidence: {result.confidence:.1%}",
        f"Visual:     {signals.visual_distance:.3f}",
        f"Temporal:   {signals.temporal_distance:.3f}",
    ]
    if signals.audio_distance is not None:
        lines.append(f"Audio:      {signals.audio_distance:.3f}")
    if result.best_match_label is not None:
        lines.append(f"Best match: {result.best_match_label} -> {result.best_match_candidate_id}")

    if result.frame_details:
        lines.append("")
        lines.append(f"{'Reference':<40} {'Candidate':<30} {'Dist':>6}  Match")
        for d in result.frame_details:
            lines.append(
                f"{d.reference_label[:40]:<40} {str(d.best_candidate_id)[:30]:<30} "
                f"{d.visual_distance:>6.3f}  {'yes' if d.is_match else 'no'}"
            )

    if result.missing_references or result.missing_candidates:
        lines.append("")
        for label in result.missing_references:
            lines.append(f"Missing reference fingerprint: {label}")
        for cid in result.missing_candidates:
            lines.append(f"Missing candidate fingerprint: {cid}")
    return "\n".join(lines)


def main(argv: list[str] = None) -> int:
    args = parse_args(argv)
    if not args.candidate and not args.candidate_video:
        print("Error: provide --candidate and/or --candidate-video", file=sys.stderr)
        return 2

    try:
        result = asyncio.run(run_audit(args))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(format_report(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
