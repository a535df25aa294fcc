from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from rollcall.cli import roll_call, roll_call_copy

from tests.fixtures import make_tree, reset_rollcall_logging


@pytest.fixture(autouse=True)
def _clean_env_and_logging(monkeypatch):
    for name in (
        "ROLLCALL_MANIFEST_PREFIX",
        "ROLLCALL_WORKERS",
        "ROLLCALL_PROGRESS",
        "ROLLCALL_LOG_LEVEL",
        "ROLLCALL_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    reset_rollcall_logging()


def test_generate_then_check_passes(tmp_path, capsys) -> None:
    root = make_tree(tmp_path)

    assert roll_call.main(["-g", "-r", str(root), "--for-testing", "--workers", "1"]) == 0
    out = capsys.readouterr().out
    assert "Roll generated: RollCall-" in out

    assert roll_call.main(["-c", "-r", str(root)]) == 0
    out = capsys.readouterr().out
    assert "Checking Roll : RollCall-" in out
    assert "Summary files: 3" in out
    assert "good : hashed=3 unhashed=0" in out
    assert "bad  :" not in out


def test_generate_and_check_in_one_run(tmp_path, capsys) -> None:
    root = make_tree(tmp_path)

    assert roll_call.main(["-g", "-c", "-r", str(root), "--with-stats"]) == 0
    out = capsys.readouterr().out
    assert "Roll generated in" in out
    assert "Check completed in" in out


def test_check_fails_when_a_file_is_missing(tmp_path, capsys) -> None:
    root = make_tree(tmp_path)
    roll_call.main(["-g", "-r", str(root)])
    (root / "b.txt").unlink()

    assert roll_call.main(["-c", "-r", str(root)]) == 1
    assert "bad  : missing=1 bad_length=0 bad_hash=0" in capsys.readouterr().out


def test_quick_check_ignores_content_changes(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_call.main(["-g", "-r", str(root)])
    (root / "a.txt").write_bytes(b"ALPHA\n")

    assert roll_call.main(["-c", "-q", "-r", str(root)]) == 0
    assert roll_call.main(["-c", "-r", str(root)]) == 1


def test_check_without_roll_exits_2(tmp_path) -> None:
    make_tree(tmp_path)
    assert roll_call.main(["-c", "-r", str(tmp_path)]) == 2


def test_missing_root_exits_2(tmp_path) -> None:
    assert roll_call.main(["-g", "-r", str(tmp_path / "nope")]) == 2


def test_corrupt_roll_exits_1(tmp_path, capsys) -> None:
    root = make_tree(tmp_path)
    roll_call.main(["-g", "-r", str(root)])
    roll_path = next(root.glob("RollCall-*.log"))
    roll_path.write_text(roll_path.read_text(encoding="utf-8") + "extra|1|\n", encoding="utf-8")

    assert roll_call.main(["-c", "-r", str(root)]) == 1
    assert "Roll file is corrupt" in capsys.readouterr().err


def test_operation_flag_is_required(tmp_path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        roll_call.main(["-r", str(tmp_path)])
    assert excinfo.value.code == 2


def test_summary_json_is_written(tmp_path) -> None:
    import jsonschema

    root = make_tree(tmp_path / "tree")
    report = tmp_path / "reports" / "summary.json"

    assert roll_call.main(["-g", "-c", "-r", str(root), "--summary-json", str(report)]) == 0

    payload = json.loads(report.read_text(encoding="utf-8"))
    schema_path = Path(__file__).resolve().parents[1] / "schemas" / "verification_summary.schema.json"
    jsonschema.validate(instance=payload, schema=json.loads(schema_path.read_text(encoding="utf-8")))
    assert payload["ok"] is True
    assert payload["counts"]["good_hashed"] == 3
    assert payload["roll"].startswith("RollCall-")


def test_manifest_prefix_from_environment(tmp_path, monkeypatch) -> None:
    root = make_tree(tmp_path)
    monkeypatch.setenv("ROLLCALL_MANIFEST_PREFIX", "Batch-")

    assert roll_call.main(["-g", "-r", str(root)]) == 0
    assert len(list(root.glob("Batch-*.log"))) == 1
    # The flag wins over the environment.
    assert roll_call.main(["-c", "-r", str(root), "--manifest-prefix", "RollCall-"]) == 2


def test_invalid_environment_is_a_usage_error(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ROLLCALL_WORKERS", "many")

    with pytest.raises(SystemExit) as excinfo:
        roll_call.main(["-g", "-r", str(tmp_path)])
    assert excinfo.value.code == 2


def test_log_file_receives_debug_output(tmp_path) -> None:
    root = make_tree(tmp_path / "tree")
    log_file = tmp_path / "logs" / "rollcall.log"

    assert roll_call.main(["-g", "-c", "-r", str(root), "--log-file", str(log_file)]) == 0
    assert log_file.is_file()


def test_copy_tool_delivers_a_batch(tmp_path, capsys) -> None:
    make_tree(tmp_path / "src")
    argv = [
        "--source-root",
        str(tmp_path / "src"),
        "--file",
        "*",
        "--recurse",
        "--scope",
        "photos-2022",
        "--transmit-number",
        "27",
        "--wormhole-entry",
        str(tmp_path / "wormhole"),
        "--dest-subdir",
        "route66",
        "--workers",
        "1",
    ]

    assert roll_call_copy.main(argv) == 0
    assert "Transferred  : 3 file(s)" in capsys.readouterr().out
    assert (tmp_path / "wormhole" / "route66" / "photos-2022-27.roll").is_file()
    assert (tmp_path / "wormhole" / "route66" / "sub" / "c.bin").is_file()


def test_copy_tool_fails_for_missing_source(tmp_path) -> None:
    argv = [
        "-r",
        str(tmp_path / "missing"),
        "--file",
        "*",
        "--scope",
        "s",
        "--transmit-number",
        "1",
        "--wormhole-entry",
        str(tmp_path / "wormhole"),
    ]
    assert roll_call_copy.main(argv) == 1


@pytest.mark.parametrize("number", ["-1", "abc", str(2**64)])
def test_copy_tool_rejects_bad_transmit_numbers(tmp_path, number: str) -> None:
    argv = [
        "-r",
        str(tmp_path),
        "--file",
        "*",
        "--scope",
        "s",
        "--transmit-number",
        number,
        "--wormhole-entry",
        str(tmp_path / "wormhole"),
    ]
    with pytest.raises(SystemExit) as excinfo:
        roll_call_copy.main(argv)
    assert excinfo.value.code == 2


@pytest.mark.parametrize("module", [roll_call, roll_call_copy])
def test_help_exits_zero(module, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        module.main(["--help"])
    assert excinfo.value.code == 0
    assert "usage:" in capsys.readouterr().out


def test_generate_skips_a_non_utf8_file_name(tmp_path, capsys) -> None:
    root = make_tree(tmp_path)
    try:
        (root / os.fsdecode(b"bad\xff.txt")).write_bytes(b"x")
    except OSError:
        pytest.skip("file system refuses non-UTF-8 names")

    assert roll_call.main(["-g", "-r", str(root), "--workers", "1"]) == 0
    assert not list(root.glob("*.tmp"))

    assert roll_call.main(["-c", "-r", str(root)]) == 0
    assert "Summary files: 3" in capsys.readouterr().out
