"""
I/O utilities for USV labels.

The primary format is the two-line-per-label text file used for manual
annotation (Audacity spectral labels):

    <StartTime>\\t<EndTime>\\t<Label>
    \\\\t<StartFrequency>\\t<EndFrequency>

CSV export/import and summary statistics are provided for analysis in
pandas.
"""

import logging
import os
from typing import Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd

from .exceptions import IOFailure, MalformedLabelFile
from .labels import DETECTED_LABEL, Label, labels_to_dataframe

logger = logging.getLogger(__name__)

FREQUENCY_MARKER = '\\'


def _write_lines(lines: Iterable[str], filepath) -> None:
    try:
        with open(filepath, 'w', newline='\n') as f:
            f.writelines(lines)
    except OSError as e:
        raise IOFailure(f"Could not open {filepath} for writing: {e}") from e


def export_labels(labels: Sequence[Label], filepath) -> str:
    """
    Write labels in the two-line text format.

    Args:
        labels: Labels to write
        filepath: Destination .txt path

    Returns:
        Path to saved file
    """
    lines = []
    for lab in labels:
        lines.append(f"{lab.start_time:.6f}\t{lab.end_time:.6f}\t{lab.label}\n")
        lines.append(f"{FREQUENCY_MARKER}\t{lab.start_frequency:.6f}\t{lab.end_frequency:.6f}\n")
    _write_lines(lines, filepath)
    return str(filepath)


def export_labels_detector(labels: Sequence[Label], filepath) -> str:
    """
    Write detector output: label text "d" and zero frequencies.

    Args:
        labels: Labels to write (only their times are used)
        filepath: Destination .txt path

    Returns:
        Path to saved file
    """
    lines = []
    for lab in labels:
        lines.append(f"{lab.start_time:.6f}\t{lab.end_time:.6f}\t{DETECTED_LABEL}\n")
        lines.append(f"{FREQUENCY_MARKER}\t0.000000\t0.000000\n")
    _write_lines(lines, filepath)
    return str(filepath)


def _parse_float(text: str, filepath, line_no: int) -> float:
    try:
        return float(text)
    except ValueError:
        raise MalformedLabelFile(
            f"{filepath}, line {line_no}: expected a number, got {text!r}"
        ) from None


def parse_labels(lines: Sequence[str], fs: float, source: str = "<labels>") -> List[Label]:
    """
    Parse label text lines into Labels.

    Blank lines are skipped. Remaining lines are paired (1, 2), (3, 4), ...
    where the first line holds times and label text and the second holds
    the frequency bounds behind a backslash marker.

    Args:
        lines: Text lines of a label file
        fs: Sample rate used to compute start_index and stop_index
        source: Name used in error messages

    Returns:
        List of Labels in file order
    """
    numbered = [
        (i + 1, line.rstrip('\r\n'))
        for i, line in enumerate(lines)
        if line.strip()
    ]
    if len(numbered) % 2:
        raise MalformedLabelFile(
            f"{source}: {len(numbered)} non-empty lines, expected two lines per label"
        )

    labels = []
    for (time_no, time_line), (freq_no, freq_line) in zip(numbered[::2], numbered[1::2]):
        time_fields = time_line.split('\t')
        if time_fields[0].strip().startswith(FREQUENCY_MARKER):
            raise MalformedLabelFile(
                f"{source}, line {time_no}: frequency line where a time line was expected"
            )
        if len(time_fields) < 2:
            raise MalformedLabelFile(
                f"{source}, line {time_no}: expected start and end time columns"
            )

        start_time = _parse_float(time_fields[0], source, time_no)
        end_time = _parse_float(time_fields[1], source, time_no)
        name = time_fields[2].strip() if len(time_fields) > 2 else ""

        freq_fields = [
            field for field in freq_line.split('\t')
            if field.strip() and field.strip() != FREQUENCY_MARKER
        ]
        if freq_fields and freq_fields[0].startswith(FREQUENCY_MARKER):
            freq_fields[0] = freq_fields[0][len(FREQUENCY_MARKER):]
        if len(freq_fields) < 2:
            raise MalformedLabelFile(
                f"{source}, line {freq_no}: expected start and end frequency columns"
            )

        start_frequency = _parse_float(freq_fields[0], source, freq_no)
        end_frequency = _parse_float(freq_fields[1], source, freq_no)

        labels.append(Label(
            start_time=start_time,
            end_time=end_time,
            label=name,
            start_frequency=start_frequency,
            end_frequency=end_frequency,
            start_index=int(round(start_time * fs)),
            stop_index=int(round(end_time * fs)),
        ))

    return labels


def import_labels(filepath, fs: float) -> List[Label]:
    """
    Load labels from a two-line-per-label text file.

    Args:
        filepath: Path to the label file
        fs: Sample rate of the corresponding audio (Hz)

    Returns:
        List of Labels with sample indices round(time * fs)

    Raises:
        IOFailure: If the file cannot be opened
        MalformedLabelFile: If the line pairing or columns are invalid
    """
    try:
        with open(filepath, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        raise IOFailure(f"Could not open {filepath} for reading: {e}") from e

    labels = parse_labels(lines, fs, source=str(filepath))
    logger.debug("Imported %d labels from %s", len(labels), filepath)
    return labels


def save_csv(labels: Sequence[Label], output_path) -> str:
    """
    Save labels as CSV with start_seconds, stop_seconds and name columns.

    Frequency bounds and durations follow as extra columns.

    Args:
        labels: Labels to save
        output_path: Path for output CSV file

    Returns:
        Path to saved file
    """
    df = pd.DataFrame({
        'start_seconds': [lab.start_time for lab in labels],
        'stop_seconds': [lab.end_time for lab in labels],
        'name': [lab.label for lab in labels],
        'start_freq_hz': [lab.start_frequency for lab in labels],
        'end_freq_hz': [lab.end_frequency for lab in labels],
        'duration_ms': [lab.duration * 1000 for lab in labels],
    })

    # Round numeric columns
    numeric_cols = df.select_dtypes(include=[np.number]).columns
    df[numeric_cols] = df[numeric_cols].round(6)

    try:
        df.to_csv(output_path, index=False)
    except OSError as e:
        raise IOFailure(f"Could not open {output_path} for writing: {e}") from e

    return str(output_path)


def load_csv(filepath, fs: float) -> List[Label]:
    """
    Load labels from a CSV written by save_csv.

    Only start_seconds and stop_seconds are required.
    """
    try:
        df = pd.read_csv(filepath)
    except OSError as e:
        raise IOFailure(f"Could not open {filepath} for reading: {e}") from e

    missing = {'start_seconds', 'stop_seconds'} - set(df.columns)
    if missing:
        raise MalformedLabelFile(f"{filepath}: missing columns {sorted(missing)}")

    labels = []
    for row in df.to_dict(orient='records'):
        start, stop = float(row['start_seconds']), float(row['stop_seconds'])
        name = row.get('name', DETECTED_LABEL)
        labels.append(Label(
            start_time=start,
            end_time=stop,
            label=DETECTED_LABEL if pd.isna(name) else str(name),
            start_frequency=float(row.get('start_freq_hz', 0.0)),
            end_frequency=float(row.get('end_freq_hz', 0.0)),
            start_index=int(round(start * fs)),
            stop_index=int(round(stop * fs)),
        ))
    return labels


def generate_summary(labels: Sequence[Label]) -> Dict:
    """
    Count and timing statistics of a label sequence.

    Keys: total_calls, total_duration_s, mean_duration_ms, std_duration_ms,
    calls_per_minute (over the span from first start to last end), a
    "<label>_count" per label text and, with two or more labels,
    mean_interval_s and median_interval_s between consecutive starts.
    """
    summary = {
        'total_calls': len(labels),
        'total_duration_s': 0.0,
        'mean_duration_ms': 0.0,
        'std_duration_ms': 0.0,
        'calls_per_minute': 0.0,
    }
    if not labels:
        return summary

    df = labels_to_dataframe(labels)
    durations_ms = (df['end_time'] - df['start_time']) * 1000

    summary['total_duration_s'] = durations_ms.sum() / 1000
    summary['mean_duration_ms'] = durations_ms.mean()
    summary['std_duration_ms'] = durations_ms.std() if len(df) > 1 else 0.0
    summary.update({f'{name}_count': int(n) for name, n in df['label'].value_counts().items()})

    if len(df) > 1:
        starts = df['start_time'].sort_values()
        span = df['end_time'].max() - starts.iloc[0]
        if span > 0:
            summary['calls_per_minute'] = len(df) * 60.0 / span
            gaps = starts.diff().dropna()
            summary['mean_interval_s'] = gaps.mean()
            summary['median_interval_s'] = gaps.median()

    return summary


def _batch_row(result: Dict) -> Dict:
    row = {'filename': os.path.basename(result.get('input_file', 'unknown'))}
    if 'error' in result:
        row.update(status='error', error=result['error'])
    else:
        row.update(result.get('summary', {}))
        row.update(status='success', output_file=os.path.basename(result.get('output_file', '')))
    return row


def generate_batch_summary(results: List[Dict], output_path) -> pd.DataFrame:
    """
    Write one CSV row per processed recording.

    Args:
        results: Result dictionaries from batch processing
        output_path: Destination CSV path

    Returns:
        The summary DataFrame, identification and call-rate columns first
    """
    df = pd.DataFrame([_batch_row(r) for r in results])

    leading = [c for c in ('filename', 'status', 'total_calls', 'calls_per_minute', 'mean_duration_ms')
               if c in df.columns]
    df = df[leading + [c for c in df.columns if c not in leading]]

    try:
        df.to_csv(output_path, index=False)
    except OSError as e:
        raise IOFailure(f"Could not open {output_path} for writing: {e}") from e
    return df
