"""
End-to-end tests of the three detectors on synthetic tone-burst recordings.
"""

import numpy as np
import pytest

from conftest import BURST_S, FS, make_recording
from squeakpeek import (
    BSCDConfig, BSCDDetector, DegenerateSignal, InvalidConfig, PSDConfig, PSDDetector,
    RBDConfig, RBDDetector, compare_labels, detect, get_detector
)
from squeakpeek.envelopes import BSCDEnvelope, bscd_score, rbd_score
from squeakpeek.preprocess import crop_roi, normalize, preprocess


def _assert_near_bursts(labels, burst_starts, margin=0.06):
    """Every label lies near a burst and every burst overlaps a label."""
    assert labels
    for lab in labels:
        assert any(
            s - margin <= lab.start_time and lab.end_time <= s + BURST_S + margin
            for s in burst_starts
        ), lab
    for s in burst_starts:
        assert any(lab.start_time <= s + BURST_S and lab.end_time >= s for lab in labels), s


def test_normalize_is_zero_mean_unit_peak_and_copies():
    x = np.array([1.0, 3.0, 5.0])
    y = normalize(x)

    assert np.mean(y) == pytest.approx(0.0)
    assert np.max(np.abs(y)) == pytest.approx(1.0)
    np.testing.assert_array_equal(x, [1.0, 3.0, 5.0])


@pytest.mark.parametrize("bad", [np.array([]), np.zeros(100), np.full(10, 3.0)])
def test_normalize_rejects_degenerate_signals(bad):
    with pytest.raises(DegenerateSignal):
        normalize(bad)


def test_preprocess_crops_roi():
    x = np.random.default_rng(1).standard_normal(1000)
    config = BSCDConfig(run_whole_signal=False, roi_start=0.1, roi_length=0.2, bandpass=False)

    prepared = preprocess(x, 1000, config)

    assert len(prepared.samples) == 200
    assert prepared.roi_start_sample == 100
    assert prepared.roi_start == 0.1


def test_crop_roi_slices_half_open_range():
    x = np.arange(1000.0)
    segment = crop_roi(x, 1000, 0.25, 0.5)

    np.testing.assert_array_equal(segment, np.arange(250.0, 750.0))
    with pytest.raises(DegenerateSignal):
        crop_roi(x, 1000, 0.75, 0.5)


def test_preprocess_whole_signal_reports_zero_start():
    x = np.random.default_rng(1).standard_normal(1000)
    prepared = preprocess(x, 1000, BSCDConfig(bandpass=False, roi_start=0.5))

    assert len(prepared.samples) == 1000
    assert prepared.roi_start == 0.0


def test_roi_outside_signal():
    x = np.random.default_rng(1).standard_normal(1000)
    config = PSDConfig(run_whole_signal=False, roi_start=0.9, roi_length=0.5, bandpass=False)

    with pytest.raises(DegenerateSignal):
        preprocess(x, 1000, config)


def test_bandpass_above_nyquist_is_invalid():
    x = np.random.default_rng(1).standard_normal(10000)
    with pytest.raises(InvalidConfig):
        preprocess(x, 200000, PSDConfig())


def test_psd_detects_bursts(recording, burst_starts, reference):
    labels = PSDDetector(PSDConfig()).detect(recording, FS)

    assert len(labels) == len(burst_starts)
    _assert_near_bursts(labels, burst_starts)
    assert compare_labels(reference, labels).f1_score == pytest.approx(1.0)

    # PSD labels carry frame indices, increasing with time
    assert all(lab.start_index <= lab.stop_index for lab in labels)
    assert labels[-1].stop_index < len(recording) // 1000


def test_psd_roi_offsets_times(recording, reference):
    config = PSDConfig(run_whole_signal=False, roi_start=0.5, roi_length=1.0)
    labels = PSDDetector(config).detect(recording, FS)

    assert len(labels) == 2
    _assert_near_bursts(labels, [0.8, 1.3])
    assert compare_labels(reference[1:], labels).true_positives == 2


def test_psd_min_effective_power_rejects_everything_when_high(recording):
    labels = PSDDetector(PSDConfig(min_effective_power=10.0)).detect(recording, FS)
    assert labels == []


def test_psd_signal_shorter_than_segment():
    x = make_recording([], duration=0.02)
    with pytest.raises(DegenerateSignal):
        PSDDetector().detect(x, FS)


def test_detection_is_scale_invariant(recording):
    config = PSDConfig()
    assert detect(recording, FS, config) == detect(2 * recording, FS, config)

    detector = BSCDDetector(BSCDConfig(merge_gap=0.02))
    np.testing.assert_array_equal(
        detector.get_envelope(recording, FS).envelope,
        detector.get_envelope(2 * recording, FS).envelope,
    )


def test_detector_does_not_modify_input(recording):
    before = recording.copy()
    PSDDetector().detect(recording, FS)
    np.testing.assert_array_equal(recording, before)


def test_rbd_detects_bursts(recording, burst_starts):
    labels = RBDDetector(RBDConfig(merge_gap=0.03)).detect(recording, FS)

    _assert_near_bursts(labels, burst_starts)
    for lab in labels:
        assert lab.start_index == round(lab.start_time * FS)
        assert lab.stop_index == round(lab.end_time * FS)


def test_rbd_score_is_peak_normalized_and_non_negative(recording):
    x = normalize(recording)
    score = rbd_score(x, window=10000, hop=125)

    assert len(score) == len(x)
    assert score.min() >= 0
    assert score.max() == pytest.approx(1.0)
    # Quiet stretch well away from any burst
    assert score[int(0.05 * FS):int(0.2 * FS)].max() < 0.02


def test_rbd_window_longer_than_signal():
    with pytest.raises(DegenerateSignal):
        rbd_score(np.random.default_rng(0).standard_normal(100), window=1000)


def test_bscd_detects_bursts(recording, burst_starts):
    labels = BSCDDetector(BSCDConfig(merge_gap=0.02)).detect(recording, FS)

    _assert_near_bursts(labels, burst_starts)


def test_bscd_score_peaks_at_power_change():
    power = np.concatenate([np.full(500, 0.01), np.full(500, 1.0)])
    stat = bscd_score(power, 100)

    assert stat.min() >= 0
    assert np.argmax(stat) == 500
    assert stat[:400].max() == 0


def test_bscd_window_is_split_into_halves():
    # 10-sample window at 1 kHz: 5 samples on each side of the evaluation point
    power = np.concatenate([np.full(1000, 0.01), np.ones(1000)])
    config = BSCDConfig(wlen=0.01, bandpass=False, ma_window=1)

    stat = BSCDEnvelope(config).compute_envelope(np.sqrt(power), 1000).envelope
    changed = np.flatnonzero(stat)

    assert 1000 in changed
    assert changed.min() >= 995
    assert changed.max() <= 1005


def test_bscd_roi_reports_absolute_samples(recording, reference):
    config = BSCDConfig(run_whole_signal=False, roi_start=0.5, roi_length=1.0, merge_gap=0.02)
    labels = BSCDDetector(config).detect(recording, FS)

    _assert_near_bursts(labels, [0.8, 1.3])
    assert compare_labels(reference[1:], labels).true_positives == 2
    for lab in labels:
        assert lab.start_time >= 0.5
        assert lab.start_index == round(lab.start_time * FS)
        assert lab.stop_index == round(lab.end_time * FS)


def test_get_detector_dispatch():
    assert isinstance(get_detector('rbd'), RBDDetector)
    assert isinstance(get_detector('PSD', PSDConfig(k=0.03)), PSDDetector)
    with pytest.raises(InvalidConfig):
        get_detector('bscd', PSDConfig())
    with pytest.raises(InvalidConfig):
        get_detector('cnn')
