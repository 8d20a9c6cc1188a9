"""
Tests for the squeakpeek command-line interface.
"""

import json

import soundfile as sf

from conftest import FS
from squeakpeek import PSDConfig, export_labels, import_labels, load_csv
from squeakpeek.cli import build_parser, main


def test_score_prints_stats(tmp_path, reference, capsys):
    provided = export_labels(reference, tmp_path / "provided.txt")
    detected = export_labels(reference[:2], tmp_path / "detected.txt")

    assert main(['score', provided, detected, '--fs', str(FS)]) == 0

    stats = json.loads(capsys.readouterr().out)
    assert stats['TruePositives'] == 2
    assert stats['FalseNegatives'] == 1
    assert stats['Precision'] == 1.0


def test_detect_writes_labels(tmp_path, recording):
    wav = tmp_path / "rec.wav"
    sf.write(str(wav), 0.5 * recording, FS, subtype='FLOAT')

    assert main(['detect', str(wav), '--method', 'psd']) == 0
    assert len(import_labels(tmp_path / "rec_detected.txt", FS)) == 3

    out = tmp_path / "rec.csv"
    assert main(['detect', str(wav), '-o', str(out)]) == 0
    assert len(load_csv(out, FS)) == 3


def test_detect_with_config_file(tmp_path, recording):
    wav = tmp_path / "rec.wav"
    sf.write(str(wav), 0.5 * recording, FS, subtype='FLOAT')
    config = tmp_path / "psd.json"
    PSDConfig(min_effective_power=10.0).save(str(config))
    out = tmp_path / "out.txt"

    assert main(['detect', str(wav), '--config', str(config), '-o', str(out)]) == 0
    assert import_labels(out, FS) == []


def test_errors_return_exit_code(tmp_path):
    assert main(['detect', str(tmp_path / "missing.wav")]) == 2


def test_parser_defaults():
    args = build_parser().parse_args(['batch', 'folder'])
    assert args.workers == 1
    assert args.method is None
    assert args.reference_suffix is None
