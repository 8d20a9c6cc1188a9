"""
Label data type shared by every stage of the detection pipeline.

A Label is one time interval: either a detector output or a manually
annotated ground-truth call. Detector output uses the label text "d" and
zero frequencies.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List

import pandas as pd


DETECTED_LABEL = "d"

LABEL_COLUMNS = [
    'start_time', 'end_time', 'label',
    'start_frequency', 'end_frequency',
    'start_index', 'stop_index',
]


@dataclass(frozen=True)
class Label:
    """
    One annotated or detected interval.

    Attributes:
        start_time: Interval start (s)
        end_time: Interval end (s), never before start_time
        label: Category tag ("d" for detector output)
        start_frequency: Advisory lower frequency (Hz)
        end_frequency: Advisory upper frequency (Hz)
        start_index: Start index in the producer's native index space
        stop_index: Stop index in the producer's native index space
    """

    start_time: float
    end_time: float
    label: str = DETECTED_LABEL
    start_frequency: float = 0.0
    end_frequency: float = 0.0
    start_index: int = 0
    stop_index: int = 0

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    @property
    def midpoint(self) -> float:
        return (self.start_time + self.end_time) / 2

    def to_dict(self) -> Dict:
        """Convert label to dictionary."""
        return asdict(self)


def labels_to_dataframe(labels: Iterable[Label]) -> pd.DataFrame:
    """
    Build a DataFrame with one row per label.

    Args:
        labels: Labels to convert

    Returns:
        DataFrame with the LABEL_COLUMNS columns (empty if no labels)
    """
    rows = [lab.to_dict() for lab in labels]
    if not rows:
        return pd.DataFrame(columns=LABEL_COLUMNS)
    return pd.DataFrame(rows, columns=LABEL_COLUMNS)


def labels_from_dataframe(df: pd.DataFrame) -> List[Label]:
    """
    Rebuild labels from a DataFrame produced by labels_to_dataframe.

    Missing optional columns fall back to the Label defaults.
    """
    labels = []
    for row in df.to_dict(orient='records'):
        labels.append(Label(
            start_time=float(row['start_time']),
            end_time=float(row['end_time']),
            label=str(row.get('label', DETECTED_LABEL)),
            start_frequency=float(row.get('start_frequency', 0.0)),
            end_frequency=float(row.get('end_frequency', 0.0)),
            start_index=int(row.get('start_index', 0)),
            stop_index=int(row.get('stop_index', 0)),
        ))
    return labels
