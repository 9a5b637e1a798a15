"""Tests for the fingerprint value type and Hamming distance."""

import pytest

from fingerprint import (
    Fingerprint,
    MalformedFingerprintError,
    bits_to_int,
    hamming_distance,
    hamming_distance_bits,
    int_to_bits,
)

MASK = (1 << 64) - 1


class TestFingerprintConstruction:
    """Tests for Fingerprint validation and codecs."""

    def test_from_bitstrings_msb_first(self):
        fp = Fingerprint.from_bitstrings("1" + "0" * 63, "0" * 63 + "1")
        assert fp.gradient_hash == 1 << 63
        assert fp.mean_hash == 1

    def test_bitstrings_round_trip(self):
        gradient = "10" * 32
        mean = "0011" * 16
        fp = Fingerprint.from_bitstrings(gradient, mean)
        assert fp.to_bitstrings() == (gradient, mean)

    def test_hex_form(self):
        fp = Fingerprint(gradient_hash=0x0F0F0F0F0F0F0F0F, mean_hash=0)
        assert fp.to_hex() == ("0f0f0f0f0f0f0f0f", "0000000000000000")
        assert Fingerprint.from_hex("0f0f0f0f0f0f0f0f", "0000000000000000") == fp

    def test_short_bitstring_rejected(self):
        """A 63-bit hash must not be accepted and silently compared."""
        with pytest.raises(MalformedFingerprintError):
            Fingerprint.from_bitstrings("0" * 63, "0" * 64)

    def test_long_bitstring_rejected(self):
        with pytest.raises(MalformedFingerprintError):
            Fingerprint.from_bitstrings("0" * 64, "0" * 65)

    def test_non_binary_characters_rejected(self):
        with pytest.raises(MalformedFingerprintError):
            Fingerprint.from_bitstrings("2" * 64, "0" * 64)

    def test_wrong_hex_length_rejected(self):
        with pytest.raises(MalformedFingerprintError):
            Fingerprint.from_hex("abc", "0" * 16)

    def test_integer_out_of_range_rejected(self):
        with pytest.raises(MalformedFingerprintError):
            Fingerprint(gradient_hash=1 << 64, mean_hash=0)
        with pytest.raises(MalformedFingerprintError):
            Fingerprint(gradient_hash=0, mean_hash=-1)

    def test_malformed_is_value_error(self):
        assert issubclass(MalformedFingerprintError, ValueError)

    def test_to_dict(self):
        fp = Fingerprint(gradient_hash=MASK, mean_hash=0)
        d = fp.to_dict()
        assert d["gradient_hash"] == "1" * 64
        assert d["mean_hash"] == "0" * 64
        assert d["gradient_hex"] == "f" * 16


class TestHammingDistance:
    """Tests for hamming_distance and hamming_distance_bits."""

    def test_identical_is_zero(self):
        assert hamming_distance(0xDEADBEEF, 0xDEADBEEF) == 0

    def test_all_bits_differ(self):
        assert hamming_distance(0, MASK) == 64

    def test_counts_mismatched_positions(self):
        assert hamming_distance(0b1011, 0b0001) == 2

    def test_symmetric(self):
        a, b = 0x123456789ABCDEF0, 0x0FEDCBA987654321
        assert hamming_distance(a, b) == hamming_distance(b, a)

    def test_bits_variant(self):
        a = "1" * 8 + "0" * 56
        b = "0" * 64
        assert hamming_distance_bits(a, b) == 8

    def test_bits_variant_rejects_length_mismatch(self):
        with pytest.raises(MalformedFingerprintError):
            hamming_distance_bits("0" * 64, "0" * 32)

    def test_int_to_bits_pads(self):
        assert int_to_bits(1) == "0" * 63 + "1"
        assert bits_to_int(int_to_bits(12345)) == 12345
