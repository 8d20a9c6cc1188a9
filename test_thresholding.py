"""
Tests for run extraction, threshold policies and moving-window statistics.
"""

import numpy as np
import pytest

from squeakpeek.spectrogram import moving_mean, moving_min, moving_std
from squeakpeek.thresholding import (
    adaptive_snr_mask, adaptive_snr_threshold, extract_runs, global_mean_mask,
    rbd_mask, runs_to_labels
)


def test_extract_runs_boundaries():
    assert extract_runs([0, 1, 1, 0, 1, 0]) == [(1, 2), (4, 4)]
    assert extract_runs([1, 0]) == [(0, 0)]
    assert extract_runs([0, 1]) == [(1, 1)]
    assert extract_runs([1, 1, 1]) == [(0, 2)]


def test_extract_runs_empty_and_all_false():
    assert extract_runs([]) == []
    assert extract_runs(np.zeros(5, dtype=bool)) == []


def test_moving_mean_shrinks_at_edges():
    x = np.array([1.0, 2.0, 3.0, 4.0, 5.0])
    # odd window: one before, one after
    np.testing.assert_allclose(moving_mean(x, 3), [1.5, 2.0, 3.0, 4.0, 4.5])
    # even window: two before, one after
    np.testing.assert_allclose(moving_mean(x, 4), [1.5, 2.0, 2.5, 3.5, 4.0])


def test_moving_mean_window_one_is_identity():
    x = np.array([3.0, -1.0, 2.0])
    np.testing.assert_array_equal(moving_mean(x, 1), x)


def test_moving_std_matches_sample_std():
    x = np.array([1.0, 2.0, 4.0, 8.0, 16.0])
    result = moving_std(x, 3)
    expected = [
        np.std(x[0:2], ddof=1),
        np.std(x[0:3], ddof=1),
        np.std(x[1:4], ddof=1),
        np.std(x[2:5], ddof=1),
        np.std(x[3:5], ddof=1),
    ]
    np.testing.assert_allclose(result, expected)


def test_moving_min_even_window():
    x = np.array([5.0, 1.0, 4.0, 3.0, 2.0, 6.0])
    # window 4 covers two before and one after
    np.testing.assert_array_equal(moving_min(x, 4), [1.0, 1.0, 1.0, 1.0, 2.0, 2.0])


def test_global_mean_mask():
    env = np.array([0.0, 1.0, 3.0, 0.0])
    np.testing.assert_array_equal(global_mean_mask(env), [False, False, True, False])


def test_rbd_mask_requires_both_gates():
    fs = 1000.0
    score = np.zeros(200)
    score[50:60] = 1.0
    score[150:160] = 0.01

    mask = rbd_mask(score, fs, 0.001, 0.05, 0.3, 0.02)

    assert mask[50:60].all()
    # Above its dynamic threshold but below the fixed floor
    assert not mask[150:160].any()

    # A high floor rejects everything even where the dynamic gate passes
    assert not rbd_mask(score, fs, 0.001, 0.05, 0.3, 2.0).any()


def test_adaptive_threshold_relaxes_with_snr():
    effective = np.full(10, 0.5)
    low_noise = np.full(10, 0.01)
    high_noise = np.full(10, 1.0)

    relaxed = adaptive_snr_threshold(effective, low_noise, 5, 0.023, 0.994)
    strict = adaptive_snr_threshold(effective, high_noise, 5, 0.023, 0.994)

    assert np.all(relaxed < strict)


def test_adaptive_snr_is_clipped_for_zero_noise_floor():
    effective = np.array([0.0, 1.0, 0.0])
    noise_floor = np.zeros(3)

    threshold = adaptive_snr_threshold(effective, noise_floor, 3, 0.0, 1.0)

    assert np.all(np.isfinite(threshold))
    # local mean of the middle frame is 1/3, SNR capped at 10
    assert threshold[1] == pytest.approx((1.0 / 3) / 11)
    np.testing.assert_array_equal(
        adaptive_snr_mask(effective, noise_floor, 3, 0.0, 1.0), [False, True, False]
    )


def test_runs_to_labels_offsets_time_and_index():
    times = np.arange(10) / 100.0
    labels = runs_to_labels([(2, 4)], times, roi_start=5.0, index_offset=500)

    assert len(labels) == 1
    lab = labels[0]
    assert lab.start_time == pytest.approx(5.02)
    assert lab.end_time == pytest.approx(5.04)
    assert (lab.start_index, lab.stop_index) == (502, 504)
    assert lab.label == "d"
    assert lab.start_frequency == 0 and lab.end_frequency == 0
