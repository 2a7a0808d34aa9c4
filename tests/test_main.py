"""CLI smoke tests; OCR is replaced by the shape-keyed fake."""

import json

import numpy as np
from PIL import Image

import main as cli

from conftest import VERIFIED_PANELS, FakeOCR, bundle_uploads


def _write_bundle(tmp_path, **kwargs):
    args = []
    for role, data in bundle_uploads(**kwargs).items():
        path = tmp_path / f"{role}.png"
        path.write_bytes(data)
        args += [f"--{role}", str(path)]
    return args


def _fake_engine(monkeypatch):
    monkeypatch.setattr(cli, "build_engine", lambda *a, **kw: FakeOCR(panels=VERIFIED_PANELS))


def test_hamming_command(capsys):
    assert cli.main(["hamming", "ff", "0f"]) == 0
    assert capsys.readouterr().out.strip() == "4"


def test_binarize_command_writes_binary_png(tmp_path, capsys):
    arr = np.full((40, 40), 230, dtype=np.uint8)
    arr[10:30, 10:30] = 10
    src, dst = tmp_path / "in.png", tmp_path / "out.png"
    Image.fromarray(arr).save(src)

    assert cli.main(["binarize", str(src), str(dst)]) == 0
    assert capsys.readouterr().out.strip() == str(dst)
    out = np.asarray(Image.open(dst))
    assert set(np.unique(out)) <= {0, 255}
    assert out[20, 20] == 0


def test_analyze_command_prints_payload(tmp_path, monkeypatch, capsys):
    _fake_engine(monkeypatch)
    monkeypatch.chdir(tmp_path)
    assert cli.main(["analyze", *_write_bundle(tmp_path)]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["user_id"] == "@alice"
    assert payload["verified"] is True


def test_submit_command_records_then_flags_duplicate(tmp_path, monkeypatch, capsys):
    _fake_engine(monkeypatch)
    history = tmp_path / "history.json"
    argv = ["submit", "--user", "u1", "--link", "l1", "--history", str(history), *_write_bundle(tmp_path)]

    assert cli.main(argv) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "accepted"
    assert len(json.loads(history.read_text())["submissions"]) == 1

    assert cli.main(argv) == 1
    assert json.loads(capsys.readouterr().out)["status"] == "duplicate"


def test_missing_file_exits_with_validation_code(tmp_path, capsys):
    argv = ["analyze", *_write_bundle(tmp_path)]
    argv[argv.index("--reply2") + 1] = str(tmp_path / "nope.png")
    assert cli.main(argv) == 2
    assert '"role": "reply2"' in capsys.readouterr().err
