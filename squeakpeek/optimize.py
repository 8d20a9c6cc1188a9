"""
Objective functions for external hyperparameter search.

An optimizer supplies parameter overrides; the objective detects, exports
the detections to a label file, scores that file against the reference
labels and returns -F1 so that minimizing it maximizes F1. The search loop
itself lives outside this package.
"""

import logging
import os
import tempfile
from typing import Callable, Dict, List, Optional

import numpy as np

from .config import DetectorConfig
from .detectors import detect
from .io import export_labels_detector
from .labels import Label
from .postprocess import filter_labels_to_roi
from .scoring import LabelSource, score

logger = logging.getLogger(__name__)


def reference_labels_for(
    provided: List[Label],
    config: DetectorConfig
) -> List[Label]:
    """Restrict reference labels to the config's ROI (all of them for whole-signal runs)."""
    if config.run_whole_signal:
        return list(provided)
    return filter_labels_to_roi(
        provided, config.roi_start, config.roi_start + config.roi_length
    )


def detector_objective(
    params: Dict,
    audio: np.ndarray,
    fs: float,
    provided: LabelSource,
    config: DetectorConfig,
    work_dir: Optional[str] = None
) -> float:
    """
    Evaluate one parameter vector.

    Args:
        params: Parameter overrides applied to config (e.g. {'k': 0.03})
        audio: Audio signal array
        fs: Sample rate (Hz)
        provided: Reference labels or path to a reference label file
        config: Base configuration selecting the detector variant
        work_dir: Directory for the temporary detection file

    Returns:
        Negative F1 score of the detections
    """
    trial_config = config.with_overrides(**params)
    labels = detect(audio, fs, trial_config)

    with tempfile.TemporaryDirectory(dir=work_dir) as tmp:
        detected_path = os.path.join(tmp, "detected_labels.txt")
        export_labels_detector(labels, detected_path)
        stats = score(provided, detected_path, fs)

    logger.debug("Params %s -> F1 %.4f", params, stats.f1_score)
    return -stats.f1_score


def make_objective(
    audio: np.ndarray,
    fs: float,
    provided: List[Label],
    config: DetectorConfig,
    work_dir: Optional[str] = None
) -> Callable[[Dict], float]:
    """
    Build a single-argument objective for an optimizer.

    Reference labels are restricted to the config's ROI once, up front.
    """
    reference = reference_labels_for(provided, config)

    def objective(params: Dict) -> float:
        return detector_objective(params, audio, fs, reference, config, work_dir)

    return objective
