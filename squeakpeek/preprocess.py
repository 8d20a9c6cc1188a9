"""
Signal preprocessing shared by all detectors.

Removes DC, peak-normalizes, crops to the region of interest and optionally
band-pass filters. The caller's array is never modified.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .config import DetectorConfig
from .exceptions import DegenerateSignal
from .spectrogram import bandpass_filter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedSignal:
    """
    Working copy of a signal ready for envelope computation.

    Attributes:
        samples: Normalized (and possibly cropped/filtered) samples
        fs: Sample rate (Hz)
        roi_start: Time of the first sample in the original recording (s)
        roi_start_sample: Index of the first sample in the original recording
    """

    samples: np.ndarray
    fs: float
    roi_start: float = 0.0
    roi_start_sample: int = 0


def normalize(x: np.ndarray) -> np.ndarray:
    """
    Remove the mean and scale to unit peak amplitude.

    Args:
        x: Input signal

    Returns:
        New zero-mean array whose largest absolute sample is 1

    Raises:
        DegenerateSignal: If the signal is empty, non-finite or constant
    """
    x = np.asarray(x, dtype=float)
    if x.ndim != 1:
        raise DegenerateSignal(f"Expected a 1-D signal, got shape {x.shape}")
    if x.size == 0:
        raise DegenerateSignal("Signal is empty")
    if not np.all(np.isfinite(x)):
        raise DegenerateSignal("Signal contains NaN or infinite samples")

    centered = x - np.mean(x)
    peak = np.max(np.abs(centered))
    if peak == 0:
        raise DegenerateSignal("Signal is all zeros after mean removal")
    return centered / peak


def roi_bounds(n_samples: int, fs: float, roi_start: float, roi_length: float) -> Tuple[int, int]:
    """
    Convert an ROI in seconds to a half-open sample range.

    Raises:
        DegenerateSignal: If the ROI is empty or reaches past the signal
    """
    first = int(round(roi_start * fs))
    stop = int(round((roi_start + roi_length) * fs))
    if first < 0 or stop > n_samples or stop <= first:
        raise DegenerateSignal(
            f"ROI {roi_start}-{roi_start + roi_length} s (samples {first}-{stop}) "
            f"is outside the {n_samples}-sample signal"
        )
    return first, stop


def crop_roi(x: np.ndarray, fs: float, roi_start: float, roi_length: float) -> np.ndarray:
    """Slice the region of interest out of a signal."""
    first, stop = roi_bounds(len(x), fs, roi_start, roi_length)
    return x[first:stop]


def preprocess(x: np.ndarray, fs: float, config: DetectorConfig) -> PreparedSignal:
    """
    Normalize, crop and filter a signal according to a detector config.

    Args:
        x: Raw signal
        fs: Sample rate (Hz)
        config: Detector configuration

    Returns:
        PreparedSignal with the working samples and the ROI offset
    """
    if fs <= 0:
        raise DegenerateSignal(f"Sample rate must be positive, got {fs}")

    samples = normalize(x)

    if config.run_whole_signal:
        first = 0
        roi_start = 0.0
    else:
        samples = crop_roi(samples, fs, config.roi_start, config.roi_length)
        first = int(round(config.roi_start * fs))
        roi_start = float(config.roi_start)
        logger.debug("Cropped ROI to samples %d-%d", first, first + len(samples))

    if config.bandpass:
        samples = bandpass_filter(
            samples, fs,
            config.fcut_min,
            config.fcut_max,
            order=config.filter_order
        )

    return PreparedSignal(
        samples=samples,
        fs=float(fs),
        roi_start=roi_start,
        roi_start_sample=first,
    )
