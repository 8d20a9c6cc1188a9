"""
Scoring of detected labels against ground truth.

Matching uses the midpoint rule: a detected label is a true positive when
its closed interval contains the midpoint of a provided label. Assignment is
greedy and one-to-one in the order labels are given, which is what earlier
scoring results were produced with.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Sequence, Union

import numpy as np

from .io import import_labels
from .labels import Label

logger = logging.getLogger(__name__)

LabelSource = Union[str, os.PathLike, Sequence[Label]]


@dataclass(frozen=True)
class DetectionStats:
    """Counts and ratios from comparing detected to provided labels."""

    total_provided: int
    total_detected: int
    true_positives: int
    false_positives: int
    false_negatives: int
    precision: float
    recall: float
    f1_score: float

    def to_dict(self) -> Dict:
        """Convert stats to a dictionary with the report column names."""
        return {
            'TotalProvidedLabels': self.total_provided,
            'TotalDetectedLabels': self.total_detected,
            'TruePositives': self.true_positives,
            'FalsePositives': self.false_positives,
            'FalseNegatives': self.false_negatives,
            'Precision': self.precision,
            'Recall': self.recall,
            'F1Score': self.f1_score,
        }


def match_labels(provided: Sequence[Label], detected: Sequence[Label]) -> List[int]:
    """
    Greedy midpoint matching.

    Args:
        provided: Ground truth labels
        detected: Detected labels

    Returns:
        For each provided label, the index of the detected label it matched,
        or -1 when it matched nothing
    """
    matched = [False] * len(detected)
    assignment = []

    for ref in provided:
        midpoint = ref.midpoint
        hit = -1
        for j, det in enumerate(detected):
            if not matched[j] and det.start_time <= midpoint <= det.end_time:
                matched[j] = True
                hit = j
                break
        assignment.append(hit)

    return assignment


def compare_labels(provided: Sequence[Label], detected: Sequence[Label]) -> DetectionStats:
    """
    Compute detection statistics with greedy midpoint matching.

    Args:
        provided: Ground truth labels
        detected: Detected labels

    Returns:
        DetectionStats; ratios are 0 (never NaN) when there is nothing to count
    """
    assignment = match_labels(provided, detected)

    true_positives = sum(1 for j in assignment if j >= 0)
    false_negatives = len(assignment) - true_positives
    false_positives = len(detected) - true_positives

    precision = true_positives / max(true_positives + false_positives, 1)
    recall = true_positives / max(true_positives + false_negatives, 1)
    f1 = 2 * (precision * recall) / max(precision + recall, np.finfo(float).eps)

    return DetectionStats(
        total_provided=len(provided),
        total_detected=len(detected),
        true_positives=true_positives,
        false_positives=false_positives,
        false_negatives=false_negatives,
        precision=precision,
        recall=recall,
        f1_score=f1,
    )


def _as_labels(source: LabelSource, fs: float) -> List[Label]:
    if isinstance(source, (str, os.PathLike)):
        return import_labels(source, fs)
    return list(source)


def score(provided: LabelSource, detected: LabelSource, fs: float) -> DetectionStats:
    """
    Score detections given as label lists or label file paths.

    Args:
        provided: Ground truth labels or path to a label file
        detected: Detected labels or path to a label file
        fs: Sample rate used to compute indices of imported labels

    Returns:
        DetectionStats
    """
    stats = compare_labels(_as_labels(provided, fs), _as_labels(detected, fs))
    logger.info(
        "TP=%d FP=%d FN=%d precision=%.3f recall=%.3f F1=%.3f",
        stats.true_positives, stats.false_positives, stats.false_negatives,
        stats.precision, stats.recall, stats.f1_score
    )
    return stats
