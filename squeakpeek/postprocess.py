"""
Post-processing filters for label sequences.

All filters return new lists and leave the input Labels untouched. When
merging and short-label removal are combined, merge first: two short
fragments separated by a small gap can become one valid call.
"""

import logging
from dataclasses import replace
from typing import List, Sequence

import numpy as np

from .labels import Label

logger = logging.getLogger(__name__)


def merge_close_labels(labels: Sequence[Label], max_gap: float) -> List[Label]:
    """
    Merge consecutive labels separated by less than max_gap seconds.

    Labels are expected sorted by start time. A merged label keeps the
    first label's start and takes the end time and stop index of the last
    label absorbed into it.

    Args:
        labels: Sorted labels
        max_gap: Largest gap that still merges (s, exclusive)

    Returns:
        Merged labels
    """
    if not labels:
        return list(labels)

    merged = [labels[0]]
    for lab in labels[1:]:
        gap = lab.start_time - merged[-1].end_time
        if gap < max_gap:
            merged[-1] = replace(
                merged[-1],
                end_time=lab.end_time,
                stop_index=lab.stop_index,
            )
        else:
            merged.append(lab)

    if len(merged) != len(labels):
        logger.debug("Merged %d labels into %d", len(labels), len(merged))
    return merged


def remove_short_labels(labels: Sequence[Label], min_duration: float) -> List[Label]:
    """Drop labels shorter than min_duration seconds, preserving order."""
    return [lab for lab in labels if lab.end_time - lab.start_time >= min_duration]


def filter_by_power(
    labels: Sequence[Label],
    effective_envelope: np.ndarray,
    min_effective_power: float
) -> List[Label]:
    """
    Drop labels whose mean effective envelope is below a floor.

    The envelope is indexed by each label's start_index..stop_index
    (inclusive), so the labels must come from the same envelope axis.
    """
    kept = []
    for lab in labels:
        segment = effective_envelope[lab.start_index:lab.stop_index + 1]
        if segment.size and np.mean(segment) >= min_effective_power:
            kept.append(lab)
    logger.debug("Power filter kept %d of %d labels", len(kept), len(labels))
    return kept


def postprocess(
    labels: Sequence[Label],
    max_gap: float = 0.0,
    min_duration: float = 0.0
) -> List[Label]:
    """
    Merge close labels, then drop short ones.

    A zero max_gap or min_duration disables that step.
    """
    result = list(labels)
    if max_gap > 0:
        result = merge_close_labels(result, max_gap)
    if min_duration > 0:
        result = remove_short_labels(result, min_duration)
    return result


def filter_labels_to_roi(labels: Sequence[Label], roi_start: float, roi_end: float) -> List[Label]:
    """Keep labels lying entirely inside [roi_start, roi_end] seconds."""
    return [
        lab for lab in labels
        if lab.start_time >= roi_start and lab.end_time <= roi_end
    ]
