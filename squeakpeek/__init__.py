"""
SqueakPeek: ultrasonic vocalization detection and scoring.

Locates USV events in high sample rate recordings with one of three
interchangeable detectors and scores the detections against annotated
labels.

Main components:
- RBDConfig / BSCDConfig / PSDConfig: Validated detector parameters
- RBDDetector / BSCDDetector / PSDDetector: Detection pipelines
- merge_close_labels, remove_short_labels: Label post-processing
- compare_labels, score: Midpoint-matching evaluation
- import_labels, export_labels, export_labels_detector: Label text files

Example usage:
    from squeakpeek import PSDConfig, PSDDetector, export_labels_detector, score

    config = PSDConfig(run_whole_signal=True)
    labels = PSDDetector(config).detect_file("recording.wav")
    export_labels_detector(labels, "recording_detected.txt")

    stats = score("recording_reference.txt", "recording_detected.txt", fs=250000)
"""

from .config import (
    DetectorConfig, RBDConfig, BSCDConfig, PSDConfig,
    get_default_config, load_config
)
from .exceptions import (
    SqueakPeekError, InvalidConfig, DegenerateSignal, MalformedLabelFile, IOFailure
)
from .labels import Label, labels_to_dataframe, labels_from_dataframe
from .detectors import (
    BaseDetector, RBDDetector, BSCDDetector, PSDDetector, get_detector, detect
)
from .postprocess import (
    merge_close_labels, remove_short_labels, filter_by_power, postprocess, filter_labels_to_roi
)
from .scoring import DetectionStats, compare_labels, match_labels, score
from .io import (
    import_labels, export_labels, export_labels_detector, save_csv, load_csv, generate_summary
)
from .optimize import detector_objective, make_objective
from .batch import batch_process, process_single_file

__version__ = '1.0.0'

__all__ = [
    # Configuration
    'DetectorConfig',
    'RBDConfig',
    'BSCDConfig',
    'PSDConfig',
    'get_default_config',
    'load_config',

    # Errors
    'SqueakPeekError',
    'InvalidConfig',
    'DegenerateSignal',
    'MalformedLabelFile',
    'IOFailure',

    # Labels
    'Label',
    'labels_to_dataframe',
    'labels_from_dataframe',

    # Detection
    'BaseDetector',
    'RBDDetector',
    'BSCDDetector',
    'PSDDetector',
    'get_detector',
    'detect',

    # Post-processing
    'merge_close_labels',
    'remove_short_labels',
    'filter_by_power',
    'postprocess',
    'filter_labels_to_roi',

    # Scoring
    'DetectionStats',
    'compare_labels',
    'match_labels',
    'score',

    # Label files
    'import_labels',
    'export_labels',
    'export_labels_detector',
    'save_csv',
    'load_csv',
    'generate_summary',

    # Optimization and batch
    'detector_objective',
    'make_objective',
    'batch_process',
    'process_single_file',
]
