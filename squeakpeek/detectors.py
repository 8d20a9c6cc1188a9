"""
USV detectors built from interchangeable change-score algorithms.

Every detector runs the same pipeline:
1. Normalize, crop to the ROI and band-pass filter the signal
2. Compute the variant's envelope on its own time axis
3. Threshold the envelope with the variant's policy
4. Turn contiguous runs into labels
5. Apply variant-specific rejection, then merge/short-label filtering

Variants differ only in the envelope algorithm, the threshold policy and
the index space of their labels.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

import numpy as np

from .config import BSCDConfig, DetectorConfig, PSDConfig, RBDConfig, get_default_config
from .envelopes import (
    BSCDEnvelope, EnvelopeAlgorithm, EnvelopeResult, PSDEnvelope, RBDEnvelope
)
from .exceptions import InvalidConfig
from .labels import Label
from .postprocess import filter_by_power, postprocess
from .preprocess import PreparedSignal, preprocess
from .spectrogram import load_audio
from .thresholding import (
    adaptive_snr_mask, extract_runs, global_mean_mask, rbd_mask, runs_to_labels
)

logger = logging.getLogger(__name__)


class BaseDetector(ABC):
    """
    Shared detection pipeline.

    Attributes:
        config: Variant configuration
        algorithm: Envelope algorithm bound to the configuration
    """

    config_class: Type[DetectorConfig] = DetectorConfig
    algorithm_class: Type[EnvelopeAlgorithm] = EnvelopeAlgorithm

    def __init__(self, config: Optional[DetectorConfig] = None):
        """
        Initialize the detector.

        Args:
            config: Configuration object. Uses the variant defaults if None.
        """
        if config is None:
            config = self.config_class()
        if not isinstance(config, self.config_class):
            raise InvalidConfig(
                f"{type(self).__name__} needs a {self.config_class.__name__}, "
                f"got {type(config).__name__}"
            )
        self.config = config
        self.algorithm = self.algorithm_class(config)

    def detect_file(self, filepath: str) -> List[Label]:
        """
        Detect USV calls in an audio file.

        Args:
            filepath: Path to audio file

        Returns:
            List of detected Labels
        """
        audio, sr = load_audio(filepath)
        return self.detect(audio, sr)

    def detect(self, audio: np.ndarray, sr: float) -> List[Label]:
        """
        Detect USV calls in audio data.

        Args:
            audio: Audio signal array (1D); not modified
            sr: Sample rate in Hz

        Returns:
            Labels sorted by start time
        """
        prepared = preprocess(audio, sr, self.config)
        result = self.algorithm.compute_envelope(prepared.samples, prepared.fs)

        mask = self.threshold(result, prepared.fs)
        runs = extract_runs(mask)

        labels = runs_to_labels(
            runs, result.times,
            roi_start=prepared.roi_start,
            index_offset=self.index_offset(prepared),
        )
        labels = self.reject(labels, result)
        labels = postprocess(labels, self.config.merge_gap, self.config.min_duration)

        logger.info("%s found %d labels", type(self).__name__, len(labels))
        return labels

    def get_envelope(self, audio: np.ndarray, sr: float) -> EnvelopeResult:
        """
        Get the detection envelope for visualization.

        Times in the result are relative to the analysed region.
        """
        prepared = preprocess(audio, sr, self.config)
        return self.algorithm.compute_envelope(prepared.samples, prepared.fs)

    @abstractmethod
    def threshold(self, result: EnvelopeResult, fs: float) -> np.ndarray:
        """Binarize the envelope."""

    def index_offset(self, prepared: PreparedSignal) -> int:
        """Offset added to run indices; sample-indexed variants report absolute samples."""
        return prepared.roi_start_sample

    def reject(self, labels: List[Label], result: EnvelopeResult) -> List[Label]:
        """Variant-specific rejection of candidate labels."""
        return labels


class RBDDetector(BaseDetector):
    """Detector using the Recursive Bayesian Difference change score."""

    config_class = RBDConfig
    algorithm_class = RBDEnvelope

    def threshold(self, result: EnvelopeResult, fs: float) -> np.ndarray:
        return rbd_mask(
            result.envelope, fs,
            self.config.smoothing_window_rbd,
            self.config.smoothing_window_thr,
            self.config.dynamic_scaling,
            self.config.amplitude_threshold,
        )


class BSCDDetector(BaseDetector):
    """Detector using the smoothed Bayesian sequential change statistic."""

    config_class = BSCDConfig
    algorithm_class = BSCDEnvelope

    def threshold(self, result: EnvelopeResult, fs: float) -> np.ndarray:
        return global_mean_mask(result.envelope)


class PSDDetector(BaseDetector):
    """
    Detector using band-limited spectrogram power.

    Labels carry STFT frame indices (relative to the analysed region) in
    start_index/stop_index, not sample indices.
    """

    config_class = PSDConfig
    algorithm_class = PSDEnvelope

    def threshold(self, result: EnvelopeResult, fs: float) -> np.ndarray:
        return adaptive_snr_mask(
            result.effective,
            result.noise_floor,
            self.config.local_window,
            self.config.k,
            self.config.w,
        )

    def index_offset(self, prepared: PreparedSignal) -> int:
        return 0

    def reject(self, labels: List[Label], result: EnvelopeResult) -> List[Label]:
        return filter_by_power(labels, result.effective, self.config.min_effective_power)


DETECTORS: Dict[str, Type[BaseDetector]] = {
    'rbd': RBDDetector,
    'bscd': BSCDDetector,
    'psd': PSDDetector,
}


def get_detector(method: str, config: Optional[DetectorConfig] = None) -> BaseDetector:
    """
    Create a detector by method name.

    Args:
        method: "rbd", "bscd" or "psd"
        config: Optional configuration, defaults for the method if None

    Returns:
        Detector instance
    """
    key = method.lower()
    if key not in DETECTORS:
        raise InvalidConfig(f"Unknown method: {method}. Available: {list(DETECTORS)}")
    if config is None:
        config = get_default_config(key)
    return DETECTORS[key](config)


def detect(audio: np.ndarray, sr: float, config: DetectorConfig) -> List[Label]:
    """
    Run the detector matching a configuration's type.

    Args:
        audio: Audio signal array (1D)
        sr: Sample rate in Hz
        config: RBDConfig, BSCDConfig or PSDConfig

    Returns:
        Detected Labels
    """
    return get_detector(config.method, config).detect(audio, sr)
