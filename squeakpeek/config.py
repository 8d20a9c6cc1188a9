"""
Configuration module for USV detection.

Provides one dataclass per detector variant (RBD, BSCD, PSD) with defaults
matching the parameters the detectors were tuned with on 250 kHz rat
recordings. Configs are validated as soon as they are constructed.
"""

from dataclasses import dataclass, asdict, fields, replace
from numbers import Integral, Real
from typing import ClassVar, Dict, List, Type
import json

from .exceptions import InvalidConfig, IOFailure


def _is_int(value) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


def _is_real(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class DetectorConfig:
    """
    Parameters shared by every detector variant.

    Attributes:
        fcut_min: Lower band-pass / analysis band edge (Hz)
        fcut_max: Upper band-pass / analysis band edge (Hz)
        bandpass: Whether to apply the zero-phase band-pass filter
        filter_order: Total order of the band-pass filter (even)
        run_whole_signal: Ignore the ROI and analyse the whole signal
        roi_start: Region of interest start (s)
        roi_length: Region of interest duration (s)
        merge_gap: Merge detections separated by less than this (s, 0 = off)
        min_duration: Drop detections shorter than this (s, 0 = off)
    """

    method: ClassVar[str] = ""

    fcut_min: float = 40000.0
    fcut_max: float = 120000.0
    bandpass: bool = True
    filter_order: int = 12

    run_whole_signal: bool = True
    roi_start: float = 0.0
    roi_length: float = 1.0

    merge_gap: float = 0.0
    min_duration: float = 0.0

    # Field groups checked by validate(); subclasses extend them
    _positive: ClassVar[tuple] = ('fcut_min', 'fcut_max', 'roi_length')
    _non_negative: ClassVar[tuple] = ('roi_start', 'merge_gap', 'min_duration')
    _integers: ClassVar[tuple] = ('filter_order',)
    _flags: ClassVar[tuple] = ('bandpass', 'run_whole_signal')

    def __post_init__(self):
        errors = self.validate()
        if errors:
            raise InvalidConfig(
                f"Invalid {type(self).__name__}: " + "; ".join(errors)
            )

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        data = asdict(self)
        data['method'] = self.method
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'DetectorConfig':
        """Create config from dictionary."""
        # Filter out any keys that aren't valid fields
        valid_fields = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered_data)

    def with_overrides(self, **params) -> 'DetectorConfig':
        """Return a validated copy with some parameters replaced."""
        valid_fields = {f.name for f in fields(self)}
        unknown = sorted(set(params) - valid_fields)
        if unknown:
            raise InvalidConfig(
                f"Unknown {type(self).__name__} parameters: {', '.join(unknown)}"
            )
        return replace(self, **params)

    def save(self, filepath: str) -> None:
        """Save configuration to JSON file."""
        try:
            with open(filepath, 'w') as f:
                json.dump(self.to_dict(), f, indent=2)
        except OSError as e:
            raise IOFailure(f"Could not open {filepath} for writing: {e}") from e

    @classmethod
    def load(cls, filepath: str) -> 'DetectorConfig':
        """Load configuration from JSON file."""
        try:
            with open(filepath, 'r') as f:
                data = json.load(f)
        except OSError as e:
            raise IOFailure(f"Could not open {filepath} for reading: {e}") from e
        except json.JSONDecodeError as e:
            raise InvalidConfig(f"{filepath} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    def _checks(self, attr: str) -> tuple:
        collected = []
        for klass in reversed(type(self).__mro__):
            collected.extend(vars(klass).get(attr, ()))
        return tuple(dict.fromkeys(collected))

    def validate(self) -> List[str]:
        """
        Validate configuration parameters.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        for name in self._checks('_flags'):
            if not isinstance(getattr(self, name), bool):
                errors.append(f"{name} must be a boolean")

        for name in self._checks('_integers'):
            value = getattr(self, name)
            if not _is_int(value):
                errors.append(f"{name} must be an integer, got {value!r}")
            elif value < 1:
                errors.append(f"{name} must be at least 1")

        for name in self._checks('_positive'):
            value = getattr(self, name)
            if not _is_real(value):
                errors.append(f"{name} must be a number, got {value!r}")
            elif value <= 0:
                errors.append(f"{name} must be positive")

        for name in self._checks('_non_negative'):
            value = getattr(self, name)
            if not _is_real(value):
                errors.append(f"{name} must be a number, got {value!r}")
            elif value < 0:
                errors.append(f"{name} must not be negative")

        if errors:
            return errors

        if self.fcut_min >= self.fcut_max:
            errors.append("fcut_min must be less than fcut_max")

        if self.filter_order % 2:
            errors.append("filter_order must be even for a band-pass design")

        return errors


@dataclass(frozen=True)
class RBDConfig(DetectorConfig):
    """
    Recursive Bayesian Difference detector parameters.

    Attributes:
        wlen: Analysis window length (s), split in half at each evaluation point
        ar_order_left: AR model order of the left half-window
        ar_order_right: AR model order of the right half-window
        evidence_order: AR model order of the shared (whole window) model
        hop: Stride between evaluation points (s)
        dynamic_scaling: Scale of the moving-average dynamic threshold
        smoothing_window_rbd: Score smoothing window (s)
        smoothing_window_thr: Dynamic threshold smoothing window (s)
        amplitude_threshold: Fixed floor the smoothed score must exceed
    """

    method: ClassVar[str] = "rbd"

    bandpass: bool = False

    wlen: float = 0.04
    ar_order_left: int = 4
    ar_order_right: int = 4
    evidence_order: int = 4
    hop: float = 0.0005

    dynamic_scaling: float = 0.3
    smoothing_window_rbd: float = 0.02
    smoothing_window_thr: float = 0.02
    amplitude_threshold: float = 0.02

    _positive: ClassVar[tuple] = (
        'wlen', 'hop', 'smoothing_window_rbd', 'smoothing_window_thr',
    )
    _non_negative: ClassVar[tuple] = ('dynamic_scaling', 'amplitude_threshold')
    _integers: ClassVar[tuple] = ('ar_order_left', 'ar_order_right', 'evidence_order')

    def validate(self) -> List[str]:
        errors = super().validate()
        if errors:
            return errors
        if self.hop > self.wlen:
            errors.append("hop must not exceed wlen")
        return errors


@dataclass(frozen=True)
class BSCDConfig(DetectorConfig):
    """
    Bayesian Sequential Change Detector parameters.

    Attributes:
        wlen: Full window length (s), split into two halves at each evaluation point
        ma_window: Moving-average window for the power envelope (samples)
    """

    method: ClassVar[str] = "bscd"

    roi_start: float = 1.0
    roi_length: float = 1.0

    wlen: float = 0.01
    ma_window: int = 5000

    _positive: ClassVar[tuple] = ('wlen',)
    _integers: ClassVar[tuple] = ('ma_window',)


@dataclass(frozen=True)
class PSDConfig(DetectorConfig):
    """
    Power spectral density detector parameters.

    Attributes:
        segment_length: STFT window and FFT length (samples)
        overlap_factor: Fractional overlap between STFT windows
        ma_window: Envelope smoothing window (frames)
        noise_window: Running-minimum noise floor window (frames)
        local_window: Local mean/std window of the adaptive threshold (frames)
        k: Standard deviation weight of the adaptive threshold
        w: SNR weight dividing the adaptive threshold
        min_effective_power: Minimum mean effective envelope of a detection
    """

    method: ClassVar[str] = "psd"

    roi_start: float = 60.0
    roi_length: float = 10.0

    segment_length: int = 8192
    overlap_factor: float = 0.59
    ma_window: int = 3
    noise_window: int = 240
    local_window: int = 194
    k: float = 0.023
    w: float = 0.994
    min_effective_power: float = 0.000085

    _non_negative: ClassVar[tuple] = ('overlap_factor', 'k', 'w', 'min_effective_power')
    _integers: ClassVar[tuple] = ('segment_length', 'ma_window', 'noise_window', 'local_window')

    def validate(self) -> List[str]:
        errors = super().validate()
        if errors:
            return errors
        if self.segment_length < 2:
            errors.append("segment_length must be at least 2 samples")
        if self.overlap_factor >= 1:
            errors.append("overlap_factor must be less than 1")
        return errors


CONFIG_CLASSES: Dict[str, Type[DetectorConfig]] = {
    RBDConfig.method: RBDConfig,
    BSCDConfig.method: BSCDConfig,
    PSDConfig.method: PSDConfig,
}


def get_default_config(method: str = "psd") -> DetectorConfig:
    """
    Get the default configuration for a detector variant.

    Args:
        method: Detector variant ("rbd", "bscd" or "psd")

    Returns:
        DetectorConfig subclass instance with default parameters

    Raises:
        InvalidConfig: If the method name is not recognized
    """
    key = method.lower()
    if key not in CONFIG_CLASSES:
        raise InvalidConfig(f"Unknown method: {method}. Available: {list(CONFIG_CLASSES)}")
    return CONFIG_CLASSES[key]()


def load_config(filepath: str) -> DetectorConfig:
    """
    Load a configuration of any variant from JSON.

    The variant is taken from the "method" key written by DetectorConfig.save.
    """
    try:
        with open(filepath, 'r') as f:
            data = json.load(f)
    except OSError as e:
        raise IOFailure(f"Could not open {filepath} for reading: {e}") from e
    except json.JSONDecodeError as e:
        raise InvalidConfig(f"{filepath} is not valid JSON: {e}") from e

    method = str(data.get('method', '')).lower()
    if method not in CONFIG_CLASSES:
        raise InvalidConfig(f"{filepath} has no valid 'method' key (got {method!r})")
    return CONFIG_CLASSES[method].from_dict(data)
