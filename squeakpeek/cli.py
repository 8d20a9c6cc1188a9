"""
Command-line interface for SqueakPeek.

Usage:
    squeakpeek detect recording.wav --method psd -o recording_detected.txt
    squeakpeek score reference.txt recording_detected.txt --fs 250000
    squeakpeek batch /path/to/wavs --method rbd --workers 4
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .batch import batch_process_with_logging
from .config import CONFIG_CLASSES, get_default_config, load_config
from .detectors import get_detector
from .exceptions import SqueakPeekError
from .io import export_labels_detector, save_csv
from .scoring import score

logger = logging.getLogger(__name__)


def _resolve_config(args):
    if args.config:
        config = load_config(args.config)
        if args.method and config.method != args.method:
            logger.warning("Config file is for %s, ignoring --method %s", config.method, args.method)
        return config
    return get_default_config(args.method or 'psd')


def _add_config_args(parser: argparse.ArgumentParser):
    parser.add_argument('--method', choices=sorted(CONFIG_CLASSES),
                        help="Detector variant (default: psd, or the config file's method)")
    parser.add_argument('--config', help="JSON configuration file")


def cmd_detect(args) -> int:
    config = _resolve_config(args)
    labels = get_detector(config.method, config).detect_file(args.audio)

    output = args.output or str(Path(args.audio).with_name(Path(args.audio).stem + "_detected.txt"))
    if output.lower().endswith('.csv'):
        save_csv(labels, output)
    else:
        export_labels_detector(labels, output)

    logger.info("Saved %d labels to %s", len(labels), output)
    return 0


def cmd_score(args) -> int:
    stats = score(args.provided, args.detected, args.fs)
    print(json.dumps(stats.to_dict(), indent=2))
    return 0


def cmd_batch(args) -> int:
    config = _resolve_config(args)
    results = batch_process_with_logging(
        args.folder,
        config=config,
        output_folder=args.output,
        max_workers=args.workers,
        reference_suffix=args.reference_suffix,
    )
    return 1 if any('error' in r for r in results) else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='squeakpeek',
        description="Detect ultrasonic vocalizations and score detections against annotations."
    )
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help="More output (-v info, -vv debug)")
    sub = parser.add_subparsers(dest='command', required=True)

    p_detect = sub.add_parser('detect', help="Detect calls in one audio file")
    p_detect.add_argument('audio', help="Audio file")
    p_detect.add_argument('-o', '--output', help="Output label file (.txt or .csv)")
    _add_config_args(p_detect)
    p_detect.set_defaults(func=cmd_detect)

    p_score = sub.add_parser('score', help="Score detected labels against provided labels")
    p_score.add_argument('provided', help="Ground truth label file")
    p_score.add_argument('detected', help="Detected label file")
    p_score.add_argument('--fs', type=float, required=True, help="Sample rate (Hz)")
    p_score.set_defaults(func=cmd_score)

    p_batch = sub.add_parser('batch', help="Detect calls in every WAV file of a folder")
    p_batch.add_argument('folder', help="Folder with WAV files")
    p_batch.add_argument('-o', '--output', help="Output folder (defaults to input folder)")
    p_batch.add_argument('--workers', type=int, default=1, help="Parallel workers")
    p_batch.add_argument('--reference-suffix',
                         help="Score against <stem><suffix>.txt label files when present")
    _add_config_args(p_batch)
    p_batch.set_defaults(func=cmd_batch)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
                        datefmt="%H:%M:%S")

    try:
        return args.func(args)
    except SqueakPeekError as e:
        logger.error("%s", e)
        return 2


if __name__ == '__main__':
    sys.exit(main())
