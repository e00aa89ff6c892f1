import pytest

from rovercraft.hashing import fnv1a64, hash_key, siphash13

LONG_PROBE_ID = (
    "PRB3422242242112300000000000000000000011111112222334445556666"
    "123131782131231231233437687687623423412"
)


def test_should_generate_hash():
    assert hash_key(LONG_PROBE_ID) == 11564296154245411618


def test_fnv1a64_of_empty_input_is_offset_basis():
    assert fnv1a64(b"") == 0xCBF29CE484222325


def test_fnv1a64_single_byte_vector():
    assert fnv1a64(b"a") == 0xAF63DC4C8601EC8C


@pytest.mark.parametrize("key", ["", "id2", "probe-1", LONG_PROBE_ID, "ünïcode"])
def test_hash_key_is_deterministic_and_64_bit(key):
    first = hash_key(key)
    assert first == hash_key(key)
    assert 0 <= first < 2**64


@pytest.mark.parametrize("length", [0, 1, 7, 8, 9, 15, 16, 17, 64])
def test_siphash13_fits_in_64_bits_for_all_tail_lengths(length):
    digest = siphash13(bytes(range(length)))
    assert 0 <= digest < 2**64
    assert digest == siphash13(bytearray(range(length)))


def test_siphash13_depends_on_length_not_just_content():
    digests = {siphash13(b"\x00" * n) for n in range(10)}
    assert len(digests) == 10


def test_hash_key_spreads_similar_keys():
    values = {hash_key(f"probe-{n}") % 6 for n in range(200)}
    assert values == set(range(6))