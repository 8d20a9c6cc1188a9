"""
Shared fixtures: synthetic recordings with known call positions.
"""

import numpy as np
import pytest

from squeakpeek import Label

FS = 250000
TONE_HZ = 60000
BURST_S = 0.03


def make_recording(burst_starts, duration=2.0, fs=FS, noise=0.01, seed=0):
    """White noise with unit-amplitude 60 kHz tone bursts at the given start times."""
    rng = np.random.default_rng(seed)
    n = int(round(duration * fs))
    audio = noise * rng.standard_normal(n)
    t = np.arange(n) / fs
    for start in burst_starts:
        inside = (t >= start) & (t < start + BURST_S)
        audio[inside] += np.sin(2 * np.pi * TONE_HZ * t[inside])
    return audio


def burst_labels(burst_starts, fs=FS):
    return [
        Label(
            start_time=s,
            end_time=s + BURST_S,
            label="call",
            start_index=int(round(s * fs)),
            stop_index=int(round((s + BURST_S) * fs)),
        )
        for s in burst_starts
    ]


@pytest.fixture
def burst_starts():
    return [0.3, 0.8, 1.3]


@pytest.fixture
def recording(burst_starts):
    return make_recording(burst_starts)


@pytest.fixture
def reference(burst_starts):
    return burst_labels(burst_starts)
