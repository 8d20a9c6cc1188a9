"""
Change-score algorithms producing detection envelopes.

Each algorithm turns a preprocessed signal into a non-negative envelope on
its own time axis:

- RBD: windowed autoregressive model comparison, one value per sample
- BSCD: Bayesian change statistic of the signal power, one value per sample
- PSD: band-limited spectrogram power, one value per STFT frame

The algorithms are strategy objects sharing the EnvelopeAlgorithm interface,
so a detector can swap one for another without touching thresholding.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import BSCDConfig, PSDConfig, RBDConfig
from .exceptions import DegenerateSignal
from .spectrogram import (
    band_power, compute_power_spectrogram, moving_mean, moving_min
)

logger = logging.getLogger(__name__)

# Relative floor for window energies before taking logarithms
ENERGY_FLOOR = 1e-12


@dataclass(frozen=True)
class EnvelopeResult:
    """
    Envelope plus the time axis needed to turn indices back into seconds.

    Attributes:
        envelope: Non-negative envelope used for thresholding
        times: Time of each envelope value relative to the first analysed sample (s)
        rate: Envelope values per second (fs for sample-indexed envelopes)
        noise_floor: Estimated noise floor (PSD only)
        effective: Envelope minus noise floor, clamped at zero (PSD only)
    """

    envelope: np.ndarray
    times: np.ndarray
    rate: float
    noise_floor: Optional[np.ndarray] = None
    effective: Optional[np.ndarray] = None


def _cumsum0(x: np.ndarray) -> np.ndarray:
    return np.concatenate(([0.0], np.cumsum(x)))


def _sliding_autocorrelation(
    x: np.ndarray,
    starts: np.ndarray,
    length: int,
    max_lag: int
) -> np.ndarray:
    """
    Autocorrelation of many equal-length windows of x.

    Lag k of the window [a, a + length) is sum(x[n] * x[n - k]) over the
    samples where both n and n - k fall inside the window.

    Returns:
        Array of shape (len(starts), max_lag + 1)
    """
    r = np.empty((len(starts), max_lag + 1))
    stops = starts + length
    for k in range(max_lag + 1):
        products = np.zeros_like(x)
        products[k:] = x[k:] * x[:len(x) - k]
        csum = _cumsum0(products)
        r[:, k] = csum[stops] - csum[np.minimum(starts + k, stops)]
    return r


def _levinson_error(r: np.ndarray, order: int, floor: float) -> np.ndarray:
    """
    Final prediction error of the Levinson-Durbin recursion, per row of r.

    Args:
        r: Autocorrelations, shape (n_windows, >= order + 1)
        order: AR model order
        floor: Smallest error kept, guards windows of silence

    Returns:
        Summed squared prediction error per window
    """
    n = r.shape[0]
    err = np.maximum(r[:, 0], floor)
    a = np.zeros((n, order + 1))
    a[:, 0] = 1.0

    for i in range(1, order + 1):
        acc = r[:, i] + np.sum(a[:, 1:i] * r[:, i - 1:0:-1], axis=1)
        k = -acc / err
        k = np.clip(k, -1.0 + 1e-12, 1.0 - 1e-12)

        previous = a[:, 1:i].copy()
        a[:, 1:i] = previous + k[:, None] * previous[:, ::-1]
        a[:, i] = k
        err = np.maximum(err * (1.0 - k ** 2), floor)

    return err


def _log_evidence(error: np.ndarray, n: int, order: int) -> np.ndarray:
    # BIC approximation to the evidence of a Gaussian AR(order) model
    return -0.5 * n * np.log(error / n) - 0.5 * order * np.log(n)


def rbd_score(
    x: np.ndarray,
    window: int,
    order_left: int = 4,
    order_right: int = 4,
    evidence_order: int = 4,
    hop: int = 1
) -> np.ndarray:
    """
    Recursive Bayesian Difference change score.

    At each evaluation point the window is split into a left and a right
    half. The score is how much better two separate AR models explain the
    halves than one shared model explains the whole window, measured as a
    difference of log evidences and clipped at zero.

    Args:
        x: Signal samples
        window: Full window length (samples), split in two halves
        order_left: AR order of the left half model
        order_right: AR order of the right half model
        evidence_order: AR order of the shared model
        hop: Samples between evaluation points

    Returns:
        Peak-normalized score, one value per sample of x
    """
    x = np.asarray(x, dtype=float)
    half = window // 2
    max_order = max(order_left, order_right, evidence_order)
    if half <= max_order:
        raise DegenerateSignal(
            f"RBD half-window of {half} samples is too short for AR order {max_order}"
        )
    if len(x) < 2 * half:
        raise DegenerateSignal(
            f"Signal of {len(x)} samples is shorter than the {2 * half}-sample RBD window"
        )

    # Boundaries between the left and right halves
    centers = np.arange(half, len(x) - half + 1, max(int(hop), 1))
    floor = ENERGY_FLOOR * max(float(np.mean(x ** 2)), np.finfo(float).tiny) * half

    r_left = _sliding_autocorrelation(x, centers - half, half, max_order)
    r_right = _sliding_autocorrelation(x, centers, half, max_order)
    r_joint = _sliding_autocorrelation(x, centers - half, 2 * half, max_order)

    evidence_left = _log_evidence(_levinson_error(r_left, order_left, floor), half, order_left)
    evidence_right = _log_evidence(_levinson_error(r_right, order_right, floor), half, order_right)
    evidence_joint = _log_evidence(
        _levinson_error(r_joint, evidence_order, 2 * floor), 2 * half, evidence_order
    )

    score = np.maximum(evidence_left + evidence_right - evidence_joint, 0.0)
    full = np.interp(np.arange(len(x)), centers, score, left=0.0, right=0.0)

    peak = np.max(np.abs(full))
    if peak > 0:
        full = full / peak
    return full


def bscd_score(power: np.ndarray, window: int) -> np.ndarray:
    """
    Bayesian sequential change statistic of a power signal.

    Power samples on each side of every evaluation point are modelled as
    exponential with their own mean rate. The statistic is the log-likelihood
    gain of a change at that point over a single shared rate, less a BIC
    penalty for the extra parameter, clipped at zero.

    Args:
        power: Non-negative power samples (squared signal)
        window: Full window length (samples), split in two halves

    Returns:
        Statistic, one value per sample (zero where the window does not fit)
    """
    power = np.asarray(power, dtype=float)
    half = window // 2
    if half < 1:
        raise DegenerateSignal(f"BSCD window of {window} samples is too short")
    if len(power) < 2 * half:
        raise DegenerateSignal(
            f"Signal of {len(power)} samples is shorter than the {2 * half}-sample BSCD window"
        )

    floor = ENERGY_FLOOR * max(float(np.mean(power)), np.finfo(float).tiny)
    csum = _cumsum0(power)
    centers = np.arange(half, len(power) - half + 1)

    mean_left = np.maximum((csum[centers] - csum[centers - half]) / half, floor)
    mean_right = np.maximum((csum[centers + half] - csum[centers]) / half, floor)
    mean_joint = (mean_left + mean_right) / 2

    gain = half * (2 * np.log(mean_joint) - np.log(mean_left) - np.log(mean_right))
    penalty = 0.5 * np.log(2 * half)

    stat = np.zeros(len(power))
    stat[centers] = np.maximum(gain - penalty, 0.0)
    return stat


def psd_envelope(
    x: np.ndarray,
    fs: float,
    fcut_min: float,
    fcut_max: float,
    segment_length: int = 8192,
    overlap_factor: float = 0.59,
    ma_window: int = 3,
    noise_window: int = 240
) -> EnvelopeResult:
    """
    Band power envelope of a spectrogram with a running-minimum noise floor.

    Args:
        x: Signal samples
        fs: Sample rate (Hz)
        fcut_min: Lower edge of the summed band (Hz)
        fcut_max: Upper edge of the summed band (Hz)
        segment_length: STFT window length (samples)
        overlap_factor: Fractional STFT overlap
        ma_window: Envelope smoothing window (frames)
        noise_window: Noise floor running-minimum window (frames)

    Returns:
        EnvelopeResult on the STFT frame axis, with noise floor and
        effective envelope filled in
    """
    frequencies, times, Sxx = compute_power_spectrogram(
        x, fs, segment_length, overlap_factor
    )

    envelope = band_power(Sxx, frequencies, fcut_min, fcut_max)
    peak = np.max(envelope) if envelope.size else 0.0
    if peak > 0:
        envelope = envelope / peak
    envelope = moving_mean(envelope, ma_window)

    noise_floor = moving_min(envelope, noise_window)
    effective = np.maximum(envelope - noise_floor, 0.0)

    hop = segment_length - min(int(round(segment_length * overlap_factor)), segment_length - 1)
    return EnvelopeResult(
        envelope=envelope,
        times=times,
        rate=fs / hop,
        noise_floor=noise_floor,
        effective=effective,
    )


class EnvelopeAlgorithm(ABC):
    """Common interface of the change-score algorithms."""

    def __init__(self, config):
        self.config = config

    @abstractmethod
    def compute_envelope(self, samples: np.ndarray, fs: float) -> EnvelopeResult:
        """Compute the detection envelope of preprocessed samples."""


class RBDEnvelope(EnvelopeAlgorithm):
    """RBD score on the sample axis."""

    config: RBDConfig

    def compute_envelope(self, samples: np.ndarray, fs: float) -> EnvelopeResult:
        logger.debug("Calculating RBD over %d samples", len(samples))
        score = rbd_score(
            samples,
            int(round(self.config.wlen * fs)),
            order_left=self.config.ar_order_left,
            order_right=self.config.ar_order_right,
            evidence_order=self.config.evidence_order,
            hop=max(int(round(self.config.hop * fs)), 1),
        )
        return EnvelopeResult(
            envelope=score,
            times=np.arange(len(score)) / fs,
            rate=fs,
        )


class BSCDEnvelope(EnvelopeAlgorithm):
    """Smoothed BSCD statistic of the signal power on the sample axis."""

    config: BSCDConfig

    def compute_envelope(self, samples: np.ndarray, fs: float) -> EnvelopeResult:
        logger.debug("Calculating BSCD over %d samples", len(samples))
        stat = bscd_score(samples ** 2, int(round(self.config.wlen * fs)))
        envelope = moving_mean(stat, self.config.ma_window)
        return EnvelopeResult(
            envelope=envelope,
            times=np.arange(len(envelope)) / fs,
            rate=fs,
        )


class PSDEnvelope(EnvelopeAlgorithm):
    """Band power envelope on the STFT frame axis."""

    config: PSDConfig

    def compute_envelope(self, samples: np.ndarray, fs: float) -> EnvelopeResult:
        logger.debug("Calculating PSD envelope over %d samples", len(samples))
        return psd_envelope(
            samples, fs,
            self.config.fcut_min,
            self.config.fcut_max,
            segment_length=self.config.segment_length,
            overlap_factor=self.config.overlap_factor,
            ma_window=self.config.ma_window,
            noise_window=self.config.noise_window,
        )
