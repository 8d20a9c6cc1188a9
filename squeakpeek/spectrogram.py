"""
Signal processing primitives for USV detection.

Handles loading audio files (including ADPCM format), zero-phase band-pass
filtering, band-limited power spectrograms, and the centered moving-window
statistics used by the envelope and threshold stages.
"""

import json
import logging
import os
import subprocess
from typing import Optional, Tuple

import numpy as np
import soundfile as sf
from scipy import signal
from scipy.ndimage import minimum_filter1d

from .exceptions import DegenerateSignal, InvalidConfig, IOFailure

logger = logging.getLogger(__name__)


def load_audio(filepath: str, target_sr: Optional[int] = None) -> Tuple[np.ndarray, int]:
    """
    Read a recording as mono float64 samples.

    libsndfile handles WAV/FLAC and most PCM variants; anything it cannot
    decode (e.g. IMA ADPCM WAV from some recorders) goes through ffmpeg.

    Args:
        filepath: Path to audio file
        target_sr: Resample to this rate when given

    Returns:
        Tuple of (samples, sample_rate); multi-channel files are averaged

    Raises:
        IOFailure: If the file is missing or cannot be decoded
    """
    if not os.path.exists(filepath):
        raise IOFailure(f"Audio file not found: {filepath}")

    try:
        samples, sr = sf.read(filepath, dtype='float64', always_2d=True)
        samples = samples.mean(axis=1)
    except RuntimeError as e:
        logger.debug("libsndfile rejected %s (%s); decoding with ffmpeg", filepath, e)
        samples, sr = _decode_with_ffmpeg(filepath)

    if target_sr is not None and sr != target_sr:
        samples = _resample(samples, sr, target_sr)
        sr = target_sr

    return samples, int(sr)


def _ffprobe(filepath: str, entries: str, output_format: str) -> str:
    command = [
        'ffprobe', '-v', 'error',
        '-show_entries', entries,
        '-of', output_format,
        filepath,
    ]
    try:
        return subprocess.run(command, capture_output=True, text=True, check=True).stdout
    except (OSError, subprocess.CalledProcessError) as e:
        raise IOFailure(f"ffprobe failed on {filepath}: {e}") from e


def _decode_with_ffmpeg(filepath: str) -> Tuple[np.ndarray, int]:
    """Decode any ffmpeg-readable file to mono float samples at its native rate."""
    try:
        sr = int(_ffprobe(filepath, 'stream=sample_rate', 'csv=p=0').split()[0])
    except (IndexError, ValueError) as e:
        raise IOFailure(f"No audio stream in {filepath}") from e

    # Raw little-endian float32 PCM on stdout, down-mixed to one channel
    command = ['ffmpeg', '-v', 'error', '-i', filepath, '-ac', '1', '-f', 'f32le', 'pipe:1']
    try:
        raw = subprocess.run(command, capture_output=True, check=True).stdout
    except (OSError, subprocess.CalledProcessError) as e:
        raise IOFailure(f"ffmpeg could not decode {filepath}: {e}") from e

    return np.frombuffer(raw, dtype='<f4').astype(np.float64), sr


def _resample(audio: np.ndarray, orig_sr: int, target_sr: int) -> np.ndarray:
    """Polyphase resampling by the reduced rate ratio."""
    if orig_sr == target_sr:
        return audio
    g = np.gcd(int(orig_sr), int(target_sr))
    return signal.resample_poly(audio, int(target_sr) // g, int(orig_sr) // g)


def get_audio_info(filepath: str) -> dict:
    """
    Describe a recording without decoding it.

    Args:
        filepath: Path to audio file

    Returns:
        Dictionary with codec, sample_rate, channels, duration (s) and
        size_bytes, or an 'error' entry when neither libsndfile nor ffprobe
        can read the header
    """
    info = {'filepath': filepath}
    try:
        header = sf.info(filepath)
        info.update(
            codec=header.subtype,
            sample_rate=int(header.samplerate),
            channels=int(header.channels),
            duration=float(header.duration),
            size_bytes=os.path.getsize(filepath),
        )
        return info
    except RuntimeError:
        logger.debug("libsndfile cannot read the header of %s", filepath)

    try:
        probe = json.loads(_ffprobe(
            filepath,
            'format=duration,size:stream=codec_name,sample_rate,channels',
            'json'
        ))
        stream = (probe.get('streams') or [{}])[0]
        container = probe.get('format', {})
        info.update(
            codec=stream.get('codec_name', 'unknown'),
            sample_rate=int(stream.get('sample_rate', 0)),
            channels=int(stream.get('channels', 0)),
            duration=float(container.get('duration', 0)),
            size_bytes=int(container.get('size', 0)),
        )
    except (IOFailure, ValueError) as e:
        info['error'] = str(e)
    return info


def bandpass_filter(
    audio: np.ndarray,
    sr: float,
    lowcut: float,
    highcut: float,
    order: int = 12
) -> np.ndarray:
    """
    Apply a zero-phase Butterworth band-pass filter.

    The filter runs forward and backward, so event boundaries are not
    shifted in time. The effective magnitude response is squared.

    Args:
        audio: Input audio array
        sr: Sample rate
        lowcut: Low cutoff frequency (Hz)
        highcut: High cutoff frequency (Hz)
        order: Total band-pass order (even)

    Returns:
        Filtered audio array
    """
    nyquist = sr / 2

    if highcut >= nyquist:
        raise InvalidConfig(
            f"Upper cutoff {highcut} Hz must be below the Nyquist frequency ({nyquist} Hz)"
        )
    if lowcut <= 0 or lowcut >= highcut:
        raise InvalidConfig(f"Invalid frequency range: {lowcut} - {highcut} Hz")

    # butter() doubles the order for band-pass designs
    sos = signal.butter(
        order // 2,
        [lowcut / nyquist, highcut / nyquist],
        btype='bandpass',
        output='sos'
    )

    padlen = 3 * (2 * len(sos) + 1)
    if len(audio) <= padlen:
        raise DegenerateSignal(
            f"Signal of {len(audio)} samples is too short to filter (needs > {padlen})"
        )

    return signal.sosfiltfilt(sos, audio)


def compute_power_spectrogram(
    audio: np.ndarray,
    sr: float,
    segment_length: int,
    overlap_factor: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Compute a Hamming-windowed magnitude-squared STFT.

    Args:
        audio: Audio signal array
        sr: Sample rate
        segment_length: Window length and FFT size (samples)
        overlap_factor: Fractional overlap between consecutive windows

    Returns:
        Tuple of (frequencies, times, Sxx)
        - frequencies: Array of bin frequencies (Hz)
        - times: Array of frame centre times (s) relative to the first sample
        - Sxx: |STFT|^2, shape (n_freqs, n_frames)
    """
    if len(audio) < segment_length:
        raise DegenerateSignal(
            f"Signal of {len(audio)} samples is shorter than one "
            f"{segment_length}-sample segment"
        )

    noverlap = int(round(segment_length * overlap_factor))
    noverlap = min(noverlap, segment_length - 1)

    frequencies, times, Sxx = signal.spectrogram(
        audio,
        fs=sr,
        window=signal.windows.hamming(segment_length, sym=True),
        nperseg=segment_length,
        noverlap=noverlap,
        nfft=segment_length,
        detrend=False,
        scaling='spectrum',
        mode='psd'
    )

    return frequencies, times, Sxx


def band_power(
    Sxx: np.ndarray,
    frequencies: np.ndarray,
    min_freq: float,
    max_freq: float
) -> np.ndarray:
    """
    Sum spectrogram power over a frequency band.

    Args:
        Sxx: Power spectrogram (freq x time)
        frequencies: Frequency array
        min_freq: Minimum frequency (inclusive)
        max_freq: Maximum frequency (inclusive)

    Returns:
        Power per time frame (1D)
    """
    freq_mask = (frequencies >= min_freq) & (frequencies <= max_freq)
    return np.sum(Sxx[freq_mask, :], axis=0)


def _window_bounds(n: int, window: int) -> Tuple[np.ndarray, np.ndarray]:
    # Centered window truncated at the edges: window//2 before, (window-1)//2 after
    idx = np.arange(n)
    lo = np.maximum(idx - window // 2, 0)
    hi = np.minimum(idx + (window - 1) // 2, n - 1) + 1
    return lo, hi


def moving_mean(x: np.ndarray, window: int) -> np.ndarray:
    """Centered moving average that shrinks at the signal edges."""
    x = np.asarray(x, dtype=float)
    window = max(int(window), 1)
    if x.size == 0 or window == 1:
        return x.copy()

    lo, hi = _window_bounds(x.size, window)
    csum = np.concatenate(([0.0], np.cumsum(x)))
    return (csum[hi] - csum[lo]) / (hi - lo)


def moving_std(x: np.ndarray, window: int) -> np.ndarray:
    """Centered moving sample standard deviation (N-1), 0 for one-sample windows."""
    x = np.asarray(x, dtype=float)
    window = max(int(window), 1)
    if x.size == 0 or window == 1:
        return np.zeros_like(x)

    lo, hi = _window_bounds(x.size, window)
    count = hi - lo

    # Shift by the global mean to keep the running sums well conditioned
    centered = x - x.mean()
    s1 = np.concatenate(([0.0], np.cumsum(centered)))
    s2 = np.concatenate(([0.0], np.cumsum(centered ** 2)))
    sum1 = s1[hi] - s1[lo]
    sum2 = s2[hi] - s2[lo]

    var = np.zeros_like(x)
    multi = count > 1
    var[multi] = (sum2[multi] - sum1[multi] ** 2 / count[multi]) / (count[multi] - 1)
    return np.sqrt(np.maximum(var, 0.0))


def moving_min(x: np.ndarray, window: int) -> np.ndarray:
    """Centered moving minimum that shrinks at the signal edges."""
    x = np.asarray(x, dtype=float)
    window = max(int(window), 1)
    if x.size == 0 or window == 1:
        return x.copy()
    # Edge replication never lowers the minimum of a truncated window
    return minimum_filter1d(x, size=window, mode='nearest')
