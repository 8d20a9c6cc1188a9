"""
Tests for greedy midpoint matching and detection statistics.
"""

import pytest

from squeakpeek import Label, compare_labels, export_labels, export_labels_detector, score
from squeakpeek.scoring import match_labels


def _labels(*spans):
    return [Label(start_time=s, end_time=e) for s, e in spans]


def test_midpoint_example():
    provided = _labels((0.0, 2.0))
    detected = _labels((0.5, 1.5), (3.0, 4.0))

    stats = compare_labels(provided, detected)

    assert stats.true_positives == 1
    assert stats.false_positives == 1
    assert stats.false_negatives == 0
    assert stats.precision == pytest.approx(0.5)
    assert stats.recall == pytest.approx(1.0)
    assert stats.f1_score == pytest.approx(2 / 3)
    assert stats.total_provided == 1
    assert stats.total_detected == 2


def test_empty_inputs_give_zero_not_nan():
    stats = compare_labels([], [])

    assert stats.precision == 0
    assert stats.recall == 0
    assert stats.f1_score == 0


def test_no_detections():
    stats = compare_labels(_labels((0.0, 1.0), (2.0, 3.0)), [])

    assert stats.false_negatives == 2
    assert stats.precision == 0
    assert stats.recall == 0
    assert stats.f1_score == 0


def test_containment_bounds_are_inclusive():
    provided = _labels((0.0, 2.0))
    assert compare_labels(provided, _labels((1.0, 1.5))).true_positives == 1
    assert compare_labels(provided, _labels((0.5, 1.0))).true_positives == 1
    assert compare_labels(provided, _labels((1.0001, 1.5))).true_positives == 0


def test_detected_label_matches_only_once():
    # Both references have their midpoint inside the single detection
    provided = _labels((0.0, 2.0), (0.5, 1.5))
    detected = _labels((0.0, 2.0))

    stats = compare_labels(provided, detected)

    assert stats.true_positives == 1
    assert stats.false_negatives == 1
    assert stats.false_positives == 0


def test_greedy_first_fit_is_order_dependent():
    # The first reference takes the first detection containing its midpoint,
    # leaving nothing for the second reference even though a different
    # assignment would match both.
    provided = _labels((0.9, 1.1), (1.4, 1.8))
    detected = _labels((0.0, 2.0), (0.8, 1.2))

    assert match_labels(provided, detected) == [0, -1]
    stats = compare_labels(provided, detected)
    assert stats.true_positives == 1
    assert stats.false_negatives == 1
    assert stats.false_positives == 1

    # Reordering the detections changes the outcome
    assert compare_labels(provided, detected[::-1]).true_positives == 2


def test_score_accepts_paths_and_lists(tmp_path):
    provided = _labels((0.0, 2.0), (5.0, 5.5))
    detected = _labels((0.5, 1.5), (3.0, 4.0))

    provided_path = tmp_path / "provided.txt"
    detected_path = tmp_path / "detected.txt"
    export_labels(provided, provided_path)
    export_labels_detector(detected, detected_path)

    from_files = score(str(provided_path), str(detected_path), fs=250000)
    from_lists = score(provided, detected, fs=250000)

    assert from_files == from_lists
    assert from_files.true_positives == 1
    assert from_files.false_negatives == 1
    assert from_files.false_positives == 1


def test_stats_to_dict_uses_report_keys():
    stats = compare_labels(_labels((0.0, 2.0)), _labels((0.5, 1.5)))
    report = stats.to_dict()

    assert report['TruePositives'] == 1
    assert report['F1Score'] == pytest.approx(1.0)
    assert set(report) == {
        'TotalProvidedLabels', 'TotalDetectedLabels', 'TruePositives',
        'FalsePositives', 'FalseNegatives', 'Precision', 'Recall', 'F1Score',
    }
