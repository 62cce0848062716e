import numpy as np
import pytest

from slamkit.features import Match
from slamkit.orb import bf_match, compute_orb, hamming_distance

ALL_ONES = 0xFFFFFFFF


@pytest.fixture
def random_image():
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(64, 64), dtype=np.uint8)


def test_hamming_identical_is_zero():
    desc = (1, 2, 3, 4, 5, 6, 7, 8)
    assert hamming_distance(desc, desc) == 0


def test_hamming_all_bits_differ():
    assert hamming_distance((0,) * 8, (ALL_ONES,) * 8) == 256


def test_hamming_is_symmetric():
    a = (0x1234, 0, 7, 0, 0, 0, 0, ALL_ONES)
    b = (0x00FF, 3, 0, 0, 9, 0, 0, 0)
    assert hamming_distance(a, b) == hamming_distance(b, a)


def test_hamming_length_mismatch():
    with pytest.raises(ValueError):
        hamming_distance((0,) * 8, (0,) * 7)


def test_keypoints_near_border_have_no_descriptor(random_image):
    rows, cols = random_image.shape
    keypoints = [(15.9, 30.0), (30.0, 15.0), (cols - 16.0, 30.0), (30.0, rows - 16.0)]
    assert compute_orb(random_image, keypoints) == [None, None, None, None]


def test_uniform_image_gives_zero_descriptor():
    image = np.full((40, 40), 100, dtype=np.uint8)
    assert compute_orb(image, [(20.0, 20.0)]) == [(0,) * 8]


def test_descriptor_shape(random_image):
    (desc,) = compute_orb(random_image, [(30.0, 30.0)])
    assert len(desc) == 8
    assert all(0 <= word < 2**32 for word in desc)


def test_descriptor_invariant_to_translation():
    rng = np.random.default_rng(7)
    big = rng.integers(0, 256, size=(100, 100), dtype=np.uint8)
    crop_a = big[0:70, 0:70]
    crop_b = big[5:75, 8:78]
    desc_a = compute_orb(crop_a, [(35.0, 30.0), (40.0, 45.0)])
    desc_b = compute_orb(crop_b, [(27.0, 25.0), (32.0, 40.0)])
    assert desc_a == desc_b


def test_self_matching_finds_identity(random_image):
    keypoints = [(20.0, 20.0), (30.0, 25.0), (40.0, 40.0), (25.0, 43.0), (5.0, 5.0)]
    descriptors = compute_orb(random_image, keypoints)
    matches = bf_match(descriptors, descriptors)
    assert matches == [Match(i, i, 0.0) for i in range(4)]


def test_bf_match_skips_missing_descriptors():
    d = (0,) * 8
    matches = bf_match([None, d], [None, (), d])
    assert matches == [Match(1, 2, 0.0)]


def test_bf_match_threshold_is_strict():
    query = [(0,) * 8]
    forty_bits = [(ALL_ONES, 0xFF, 0, 0, 0, 0, 0, 0)]
    assert bf_match(query, forty_bits) == []
    assert bf_match(query, forty_bits, max_distance=41) == [Match(0, 0, 40.0)]


def test_bf_match_picks_nearest_and_first_on_tie():
    query = [(0,) * 8]
    train = [(0b111, 0, 0, 0, 0, 0, 0, 0), (0b1, 0, 0, 0, 0, 0, 0, 0), (0b10, 0, 0, 0, 0, 0, 0, 0)]
    assert bf_match(query, train) == [Match(0, 1, 1.0)]


def test_compute_orb_rejects_colour_image():
    with pytest.raises(ValueError):
        compute_orb(np.zeros((40, 40, 3), dtype=np.uint8), [(20.0, 20.0)])