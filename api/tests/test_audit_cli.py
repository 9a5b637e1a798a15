"""Tests for the audit CLI."""

import io
import json
from unittest.mock import Mock, patch

import numpy as np
import pytest
from PIL import Image

from audit_cli import format_report, main, parse_args, parse_duration
from audit_models import AuditBand, AuditResult, AuditSignals, FrameMatchResult


def write_png(path, step: int = 8):
    pixels = np.tile(np.arange(32) * step, (32, 1)).astype(np.uint8)
    Image.fromarray(pixels).save(path, format="PNG")
    return str(path)


class TestParseArgs:
    """Tests for CLI argument parsing."""

    def test_default_args(self):
        args = parse_args(["--reference", "a.jpg"])
        assert args.reference == ["a.jpg"]
        assert args.candidate == []
        assert args.candidate_video is None
        assert args.audio_distance is None
        assert args.sample_offset is None
        assert args.sample_interval is None
        assert args.json is False

    def test_multiple_sources(self):
        args = parse_args([
            "--reference", "a.jpg", "b.jpg",
            "--candidate", "c.jpg", "d.jpg",
            "--audio-distance", "0.25",
            "--json",
        ])
        assert args.reference == ["a.jpg", "b.jpg"]
        assert args.candidate == ["c.jpg", "d.jpg"]
        assert args.audio_distance == 0.25
        assert args.json is True

    def test_reference_required(self):
        with pytest.raises(SystemExit):
            parse_args(["--candidate", "c.jpg"])


class TestParseDuration:
    """Tests for parse_duration."""

    def test_seconds(self):
        assert parse_duration("125.5") == 125.5

    def test_iso(self):
        assert parse_duration("PT2M5S") == 125.0
        assert parse_duration("pt1m") == 60.0


class TestFormatReport:
    """Tests for format_report."""

    def test_contains_band_and_table(self):
        result = AuditResult(
            score=83,
            band=AuditBand.PLATFORM_CONSISTENT,
            signals=AuditSignals(visual_distance=0.125, temporal_distance=0.0),
            best_match_label="Start",
            best_match_metadata=None,
            confidence=0.91875,
            frame_details=(
                FrameMatchResult(
                    reference_label="Start",
                    best_candidate_id="frame_7",
                    visual_distance=0.125,
                    is_match=True,
                ),
            ),
            best_match_candidate_id="frame_7",
            missing_candidates=("frame_67",),
        )

        report = format_report(result)

        assert "PLATFORM_CONSISTENT" in report
        assert "83 / 1023" in report
        assert "Start -> frame_7" in report
        assert "Missing candidate fingerprint: frame_67" in report
        assert "Audio" not in report


class TestMain:
    """Tests for the CLI entry point."""

    def test_identical_images(self, tmp_path, capsys):
        ref = write_png(tmp_path / "ref.png")
        cand = write_png(tmp_path / "cand.png")

        code = main(["--reference", ref, "--candidate", cand, "--json"])

        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["score"] == 0
        assert data["band"] == "VERIFIED_ORIGINAL"

    def test_unreadable_candidate_is_reported(self, tmp_path, capsys):
        ref = write_png(tmp_path / "ref.png")
        missing = str(tmp_path / "missing.png")

        code = main(["--reference", ref, "--candidate", missing])

        assert code == 0
        out = capsys.readouterr().out
        assert "DIVERGENT_SOURCE" in out
        assert f"Missing candidate fingerprint: {missing}" in out

    def test_requires_candidates(self, tmp_path, capsys):
        ref = write_png(tmp_path / "ref.png")
        assert main(["--reference", ref]) == 2
        assert "candidate" in capsys.readouterr().err

    def test_invalid_audio_distance(self, tmp_path, capsys):
        ref = write_png(tmp_path / "ref.png")
        code = main(["--reference", ref, "--candidate", ref, "--audio-distance", "2"])
        assert code == 2

    def test_candidate_video(self, tmp_path, capsys):
        ref = write_png(tmp_path / "ref.png")
        buf = io.BytesIO()
        Image.open(ref).convert("RGB").save(buf, format="PNG")
        frame_bytes = buf.getvalue()

        with patch("frame_extractor.extract_frame_sync", return_value=frame_bytes) as mock_extract:
            code = main([
                "--reference", ref,
                "--candidate-video", "copy.mp4",
                "--duration", "PT2M10S",
                "--json",
            ])

        assert code == 0
        called_ts = sorted(call.args[1] for call in mock_extract.call_args_list)
        assert called_ts == [7.0, 67.0, 127.0]
        data = json.loads(capsys.readouterr().out)
        assert data["score"] == 0

    def test_candidate_video_uses_extraction_env(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("FFMPEG_PATH", "/opt/ffmpeg/bin/ffmpeg")
        monkeypatch.setenv("SAMPLE_INTERVAL_SEC", "30")
        monkeypatch.delenv("SAMPLE_OFFSET_SEC", raising=False)
        ref = write_png(tmp_path / "ref.png")
        buf = io.BytesIO()
        Image.open(ref).convert("RGB").save(buf, format="PNG")

        with patch("frame_extractor.subprocess.run") as mock_run:
            mock_run.return_value = Mock(returncode=0, stdout=buf.getvalue(), stderr=b"")
            code = main([
                "--reference", ref,
                "--candidate-video", "copy.mp4",
                "--duration", "70",
                "--json",
            ])

        assert code == 0
        commands = [call.args[0] for call in mock_run.call_args_list]
        assert {cmd[0] for cmd in commands} == {"/opt/ffmpeg/bin/ffmpeg"}
        seeks = sorted(float(cmd[cmd.index("-ss") + 1]) for cmd in commands)
        assert seeks == [7.0, 37.0, 67.0]
        assert json.loads(capsys.readouterr().out)["score"] == 0
