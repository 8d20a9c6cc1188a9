"""
Adaptive thresholding and run extraction.

Turns an envelope into a boolean mask with one of three threshold policies,
then converts contiguous runs of the mask into Labels.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .labels import Label
from .spectrogram import moving_mean, moving_std

logger = logging.getLogger(__name__)

# Upper bound of the local SNR used to relax the PSD threshold
MAX_LOCAL_SNR = 10.0


def extract_runs(mask: Sequence) -> List[Tuple[int, int]]:
    """
    Find contiguous runs of True in a boolean mask.

    The mask is padded with False on both sides before differencing, so runs
    touching either end are found too.

    Args:
        mask: Boolean (or 0/1) sequence

    Returns:
        List of (start, end) index pairs, 0-based and inclusive
    """
    mask = np.asarray(mask, dtype=bool).astype(np.int8)
    edges = np.diff(np.concatenate(([0], mask, [0])))
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1
    return [(int(s), int(e)) for s, e in zip(starts, ends)]


def rbd_mask(
    score: np.ndarray,
    fs: float,
    smoothing_window_rbd: float,
    smoothing_window_thr: float,
    dynamic_scaling: float,
    amplitude_threshold: float
) -> np.ndarray:
    """
    Two-gate threshold of a smoothed RBD score.

    A sample is accepted only when the smoothed score exceeds both the
    moving-average dynamic threshold and the fixed amplitude floor.

    Args:
        score: RBD score, one value per sample
        fs: Sample rate (Hz)
        smoothing_window_rbd: Score smoothing window (s)
        smoothing_window_thr: Dynamic threshold window (s)
        dynamic_scaling: Scale of the dynamic threshold
        amplitude_threshold: Fixed floor

    Returns:
        Boolean mask, one value per sample
    """
    smoothed = moving_mean(score, int(round(smoothing_window_rbd * fs)))
    dynamic = moving_mean(smoothed, int(round(smoothing_window_thr * fs))) * dynamic_scaling
    return (smoothed > dynamic) & (smoothed > amplitude_threshold)


def global_mean_mask(envelope: np.ndarray) -> np.ndarray:
    """Accept values above the global mean of the envelope."""
    envelope = np.asarray(envelope, dtype=float)
    if envelope.size == 0:
        return np.zeros(0, dtype=bool)
    return envelope > np.mean(envelope)


def adaptive_snr_threshold(
    effective: np.ndarray,
    noise_floor: np.ndarray,
    local_window: int,
    k: float,
    w: float
) -> np.ndarray:
    """
    Local-statistics threshold relaxed by the local SNR.

    threshold = (local_mean + k * local_std) / (1 + w * local_snr), where
    local_snr = min(effective / (noise_floor + eps), 10).
    """
    local_snr = np.minimum(effective / (noise_floor + np.finfo(float).eps), MAX_LOCAL_SNR)
    local_mean = moving_mean(effective, local_window)
    local_std = moving_std(effective, local_window)
    return (local_mean + k * local_std) / (1 + w * local_snr)


def adaptive_snr_mask(
    effective: np.ndarray,
    noise_floor: np.ndarray,
    local_window: int,
    k: float,
    w: float
) -> np.ndarray:
    """Accept frames whose effective envelope exceeds the adaptive threshold."""
    threshold = adaptive_snr_threshold(effective, noise_floor, local_window, k, w)
    return effective > threshold


def runs_to_labels(
    runs: Sequence[Tuple[int, int]],
    times: np.ndarray,
    roi_start: float = 0.0,
    index_offset: int = 0
) -> List[Label]:
    """
    Convert index runs into detector Labels.

    Args:
        runs: (start, end) index pairs on the envelope axis
        times: Time of each envelope index relative to the analysed region (s)
        roi_start: Start time of the analysed region in the recording (s)
        index_offset: Added to the run indices for start_index/stop_index

    Returns:
        Labels tagged "d" with zero frequencies
    """
    labels = []
    for start, end in runs:
        labels.append(Label(
            start_time=float(times[start]) + roi_start,
            end_time=float(times[end]) + roi_start,
            start_index=start + index_offset,
            stop_index=end + index_offset,
        ))
    logger.debug("Converted %d runs to labels", len(labels))
    return labels
