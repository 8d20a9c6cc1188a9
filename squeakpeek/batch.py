"""
Batch detection over folders of recordings.

Each recording is detected independently, written to its own label file
and summarised; a failure in one recording is reported in its result and
does not stop the batch. Recordings may be processed in parallel threads.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .config import DetectorConfig, PSDConfig
from .detectors import get_detector
from .exceptions import SqueakPeekError
from .io import export_labels_detector, generate_batch_summary, generate_summary, import_labels
from .labels import Label
from .scoring import compare_labels
from .spectrogram import get_audio_info

logger = logging.getLogger(__name__)

BATCH_SUMMARY_NAME = "usv_batch_summary.csv"

ProgressCallback = Callable[[str, int, int], None]


def _add_rate(summary: Dict, audio_info: Dict) -> None:
    duration = audio_info.get('duration')
    if duration is None:
        return
    summary['file_duration_s'] = duration
    if duration > 0 and summary['total_calls']:
        summary['calls_per_minute'] = summary['total_calls'] * 60.0 / duration


def _reference_stats(
    wav_path: Path,
    labels: List[Label],
    reference_suffix: str,
    fs: float
) -> Optional[Dict]:
    """Score labels against "<stem><reference_suffix>.txt" if that file exists."""
    reference_path = wav_path.with_name(wav_path.stem + reference_suffix + ".txt")
    if not reference_path.exists():
        logger.debug("No reference labels at %s", reference_path)
        return None
    return compare_labels(import_labels(reference_path, fs), labels).to_dict()


def process_single_file(
    wav_path: str,
    config: DetectorConfig,
    output_dir: Optional[str] = None,
    output_suffix: str = "_detected",
    reference_suffix: Optional[str] = None
) -> Dict:
    """
    Detect calls in one recording and write its label file.

    Args:
        wav_path: Path to the recording
        config: Detection configuration; its type selects the detector
        output_dir: Where to write labels (defaults to the recording's folder)
        output_suffix: Appended to the recording name for the label file
        reference_suffix: If set, score against "<stem><reference_suffix>.txt"
            beside the recording when it exists

    Returns:
        Result dictionary with input_file, output_file, num_calls, summary
        and, when a reference was scored, stats. A failed recording yields
        only input_file and error.
    """
    path = Path(wav_path)
    try:
        labels = get_detector(config.method, config).detect_file(str(path))

        target_dir = Path(output_dir) if output_dir is not None else path.parent
        os.makedirs(target_dir, exist_ok=True)
        output_path = export_labels_detector(labels, target_dir / f"{path.stem}{output_suffix}.txt")

        audio_info = get_audio_info(str(path))
        summary = generate_summary(labels)
        _add_rate(summary, audio_info)

        result = {
            'input_file': wav_path,
            'output_file': output_path,
            'num_calls': len(labels),
            'summary': summary,
        }

        if reference_suffix is not None:
            stats = _reference_stats(path, labels, reference_suffix, audio_info.get('sample_rate', 0))
            if stats is not None:
                result['stats'] = stats
                summary['precision'] = stats['Precision']
                summary['recall'] = stats['Recall']
                summary['f1_score'] = stats['F1Score']

    except (SqueakPeekError, OSError) as e:
        logger.warning("Failed to process %s: %s", wav_path, e)
        return {'input_file': wav_path, 'error': str(e)}

    return result


def find_audio_files(input_folder: str, file_pattern: str = "*.wav") -> List[Path]:
    """Sorted files matching the pattern, retried upper-case (e.g. *.WAV)."""
    folder = Path(input_folder)
    return sorted(folder.glob(file_pattern)) or sorted(folder.glob(file_pattern.upper()))


def _run_jobs(
    files: List[Path],
    job: Callable[[str], Dict],
    max_workers: int
) -> Iterator[Tuple[Path, Dict]]:
    # Yields in completion order when parallel, file order otherwise
    if max_workers <= 1:
        for path in files:
            yield path, job(str(path))
        return

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(job, str(path)): path for path in files}
        for future in as_completed(futures):
            yield futures[future], future.result()


def batch_process(
    input_folder: str,
    config: Optional[DetectorConfig] = None,
    output_folder: Optional[str] = None,
    file_pattern: str = "*.wav",
    progress_callback: Optional[ProgressCallback] = None,
    max_workers: int = 1,
    reference_suffix: Optional[str] = None
) -> List[Dict]:
    """
    Detect calls in every matching recording of a folder.

    Writes one label file per recording plus usv_batch_summary.csv in the
    output folder.

    Args:
        input_folder: Folder with recordings
        config: Detection configuration (whole-signal PSD if None)
        output_folder: Output folder (defaults to input_folder)
        file_pattern: Glob pattern selecting recordings
        progress_callback: Called as (filename, done, total) after each file
        max_workers: Parallel threads; 1 processes files in order
        reference_suffix: See process_single_file

    Returns:
        One result dictionary per recording
    """
    config = config if config is not None else PSDConfig(run_whole_signal=True)
    files = find_audio_files(input_folder, file_pattern)
    if not files:
        logger.warning("No files matching %s in %s", file_pattern, input_folder)
        return []

    output_folder = output_folder or input_folder
    os.makedirs(output_folder, exist_ok=True)

    def job(wav_path: str) -> Dict:
        return process_single_file(
            wav_path, config, output_folder, reference_suffix=reference_suffix
        )

    results = []
    for done, (path, result) in enumerate(_run_jobs(files, job, max_workers), start=1):
        results.append(result)
        if progress_callback:
            progress_callback(path.name, done, len(files))

    generate_batch_summary(results, os.path.join(output_folder, BATCH_SUMMARY_NAME))
    return results


def batch_process_with_logging(
    input_folder: str,
    config: Optional[DetectorConfig] = None,
    output_folder: Optional[str] = None,
    max_workers: int = 1,
    reference_suffix: Optional[str] = None
) -> List[Dict]:
    """batch_process with per-file progress and a closing summary in the log."""
    started = time.time()
    logger.info("Batch detection in %s, writing to %s", input_folder, output_folder or input_folder)

    results = batch_process(
        input_folder,
        config=config,
        output_folder=output_folder,
        progress_callback=lambda name, done, total: logger.info("[%d/%d] %s", done, total, name),
        max_workers=max_workers,
        reference_suffix=reference_suffix,
    )

    failed = [r for r in results if 'error' in r]
    calls = sum(r['num_calls'] for r in results if 'error' not in r)
    logger.info(
        "Processed %d files in %.1f s (%d failed), %d calls detected",
        len(results), time.time() - started, len(failed), calls
    )
    return results
