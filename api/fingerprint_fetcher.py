"""Fetch image sources and fingerprint them concurrently.

A source may be an http(s) URL, a base64 `data:` URL or a local file path.
Every source is fetched and hashed independently under a bounded timeout.
Any failure (network error, HTTP error status, timeout, undecodable bytes)
yields a missing fingerprint for that source only; the rest of the batch
carries on.

Usage:
    refs = await build_reference_frames([
        ReferenceSource(label="Start", source="https://example.com/a.jpg"),
        ReferenceSource(label="End", source="https://example.com/b.jpg"),
    ])
"""
import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence
from urllib.parse import unquote_to_bytes

import httpx

from audit_models import CandidateFrame, ReferenceFrame
from config import DEFAULT_FETCH_CONFIG, DEFAULT_HASHER_CONFIG, FetchConfig, HasherConfig
from fingerprint import Fingerprint
from pixel_hasher import fingerprint_bytes

logger = logging.getLogger(__name__)


@dataclass
class ReferenceSource:
    """Where to load a reference frame from."""
    label: str
    source: str
    weight: float = 1.0
    metadata: Any = None
    timestamp: Optional[float] = None


@dataclass
class CandidateSource:
    """Where to load a candidate frame from."""
    id: str
    source: str
    timestamp: Optional[float] = None
    metadata: Any = None


def decode_data_url(url: str) -> bytes:
    """Decode a `data:[<mime>][;base64],<payload>` URL."""
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:"):
        raise ValueError("Malformed data URL")
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
    return unquote_to_bytes(payload)


async def load_source_bytes(client: httpx.AsyncClient, source: str) -> bytes:
    """Read the raw bytes behind a source. Raises on any failure."""
    if source.startswith("data:"):
        return decode_data_url(source)
    if source.startswith(("http://", "https://")):
        response = await client.get(source)
        response.raise_for_status()
        return response.content
    return await asyncio.to_thread(Path(source).read_bytes)


async def fetch_fingerprint(
    client: httpx.AsyncClient,
    source: str,
    config: FetchConfig = DEFAULT_FETCH_CONFIG,
    hasher_config: HasherConfig = DEFAULT_HASHER_CONFIG,
) -> Optional[Fingerprint]:
    """
    Fetch one source and fingerprint it.

    Returns:
        Fingerprint, or None if the source could not be fetched or decoded
        within config.timeout_sec
    """
    async def _fetch_and_hash() -> Optional[Fingerprint]:
        data = await load_source_bytes(client, source)
        return await asyncio.to_thread(fingerprint_bytes, data, hasher_config)

    try:
        fingerprint = await asyncio.wait_for(_fetch_and_hash(), timeout=config.timeout_sec)
    except asyncio.TimeoutError:
        logger.warning(f"Timed out after {config.timeout_sec}s fingerprinting {_describe(source)}")
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning(f"Failed to fetch {_describe(source)}: {e}")
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read {_describe(source)}: {e}")
        return None

    if fingerprint is None:
        logger.warning(f"Could not decode image from {_describe(source)}")
    return fingerprint


async def fetch_fingerprints(
    sources: Sequence[str],
    config: FetchConfig = DEFAULT_FETCH_CONFIG,
    hasher_config: HasherConfig = DEFAULT_HASHER_CONFIG,
    client: Optional[httpx.AsyncClient] = None,
) -> list[Optional[Fingerprint]]:
    """
    Fingerprint many sources concurrently.

    Args:
        sources: Image sources to fingerprint
        config: Timeout and concurrency limits
        hasher_config: Hash geometry
        client: Optional shared client (one is created and closed otherwise)

    Returns:
        List aligned with `sources`; None marks a source that failed
    """
    if not sources:
        return []

    semaphore = asyncio.Semaphore(config.max_concurrent_fetches)

    async def fetch_with_semaphore(c: httpx.AsyncClient, source: str) -> Optional[Fingerprint]:
        async with semaphore:
            return await fetch_fingerprint(c, source, config, hasher_config)

    async def run(c: httpx.AsyncClient) -> list[Optional[Fingerprint]]:
        return list(await asyncio.gather(*[fetch_with_semaphore(c, s) for s in sources]))

    if client is not None:
        results = await run(client)
    else:
        async with httpx.AsyncClient(
            timeout=config.timeout_sec,
            follow_redirects=config.follow_redirects,
            headers={"User-Agent": config.user_agent},
        ) as owned:
            results = await run(owned)

    failed = sum(1 for r in results if r is None)
    if failed:
        logger.warning(f"{failed}/{len(results)} sources produced no fingerprint")
    return results


async def build_reference_frames(
    sources: Sequence[ReferenceSource],
    config: FetchConfig = DEFAULT_FETCH_CONFIG,
    hasher_config: HasherConfig = DEFAULT_HASHER_CONFIG,
    client: Optional[httpx.AsyncClient] = None,
) -> list[ReferenceFrame]:
    fingerprints = await fetch_fingerprints(
        [s.source for s in sources], config, hasher_config, client
    )
    return [
        ReferenceFrame(
            label=s.label,
            fingerprint=fp,
            weight=s.weight,
            metadata=s.metadata,
            timestamp=s.timestamp,
        )
        for s, fp in zip(sources, fingerprints)
    ]


async def build_candidate_frames(
    sources: Sequence[CandidateSource],
    config: FetchConfig = DEFAULT_FETCH_CONFIG,
    hasher_config: HasherConfig = DEFAULT_HASHER_CONFIG,
    client: Optional[httpx.AsyncClient] = None,
) -> list[CandidateFrame]:
    fingerprints = await fetch_fingerprints(
        [s.source for s in sources], config, hasher_config, client
    )
    return [
        CandidateFrame(id=s.id, fingerprint=fp, timestamp=s.timestamp, metadata=s.metadata)
        for s, fp in zip(sources, fingerprints)
    ]


def _describe(source: str) -> str:
    if source.startswith("data:"):
        return f"data URL ({len(source)} chars)"
    return source
