from __future__ import annotations

import os
import re
from datetime import UTC, datetime

import pytest

from rollcall.errors import BuildError, IntegrityMismatch, MalformedArtifact
from rollcall.roll import builder
from rollcall.roll.builder import OnHashError, write_standalone_roll
from rollcall.roll.parser import embedded_digest, find_latest_roll, parse_standalone_roll

from tests.fixtures import make_tree, sha256_hex_upper

PREFIX = "RollCall-"
NOW = datetime(2024, 3, 1, 12, 30, 45, tzinfo=UTC)


def _generate(root, **kwargs):
    kwargs.setdefault("sort", True)
    kwargs.setdefault("now", NOW)
    kwargs.setdefault("workers", 1)
    return write_standalone_roll(root, prefix=PREFIX, on_error=OnHashError.EMPTY_DIGEST, **kwargs)


def test_roll_is_named_after_its_own_digest(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_path = _generate(root)

    assert re.fullmatch(rf"{PREFIX}[0-9A-F]{{64}}\.log", roll_path.name)
    assert roll_path.name == f"{PREFIX}{sha256_hex_upper(roll_path.read_bytes())}.log"
    assert not list(root.glob("*.tmp"))


def test_roll_content_header_and_records(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_path = _generate(root)
    lines = roll_path.read_text(encoding="utf-8").splitlines()

    assert lines[0] == f"# Roll for {os.path.abspath(root)} at 2024-03-01T12:30:45"
    assert [line.split("|")[0] for line in lines[1:]] == ["a.txt", "b.txt", "sub/c.bin"]

    roll = parse_standalone_roll(roll_path)
    assert roll.scope == ""
    assert roll.sequence == 0
    assert len(roll.records) == 3
    assert roll.malformed == ()


def test_stats_trailer_is_skipped_when_reading(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_path = _generate(root, with_stats=True)

    assert roll_path.read_text(encoding="utf-8").splitlines()[-1].startswith("# Generated in ")
    roll = parse_standalone_roll(roll_path)
    assert len(roll.records) == 3
    assert roll.malformed == ()


def test_earlier_rolls_are_never_listed(tmp_path) -> None:
    root = make_tree(tmp_path)
    first = _generate(root)
    second = _generate(root, now=datetime(2024, 3, 2, tzinfo=UTC))

    assert first != second
    paths = {r.relative_path for r in parse_standalone_roll(second).records}
    assert paths == {"a.txt", "b.txt", "sub/c.bin"}


def test_no_recurse_and_quick_mode(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll = parse_standalone_roll(_generate(root, recurse=False, with_hashes=False))

    assert [r.relative_path for r in roll.records] == ["a.txt", "b.txt"]
    assert not any(r.hashed for r in roll.records)


def test_empty_directory_gives_an_empty_roll_unless_refused(tmp_path) -> None:
    assert parse_standalone_roll(_generate(tmp_path)).records == ()

    with pytest.raises(BuildError):
        _generate(tmp_path, allow_empty=False)


def test_edited_roll_is_rejected(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_path = _generate(root)
    roll_path.write_text(roll_path.read_text(encoding="utf-8").replace("|6|", "|7|"), encoding="utf-8")

    with pytest.raises(IntegrityMismatch, match="corrupt"):
        parse_standalone_roll(roll_path)


def test_renamed_roll_is_rejected(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_path = _generate(root)
    renamed = roll_path.with_name(f"{PREFIX}{'0' * 64}.log")
    roll_path.rename(renamed)

    with pytest.raises(IntegrityMismatch):
        parse_standalone_roll(renamed)


def test_name_without_digest_is_malformed(tmp_path) -> None:
    p = tmp_path / f"{PREFIX}latest.log"
    p.write_text("a.txt|1|\n", encoding="utf-8")

    with pytest.raises(MalformedArtifact):
        embedded_digest(p)


def test_lowercase_digest_in_name_is_accepted(tmp_path) -> None:
    root = make_tree(tmp_path)
    roll_path = _generate(root)
    lower = roll_path.with_name(PREFIX + roll_path.stem[len(PREFIX):].lower() + ".log")
    roll_path.rename(lower)

    assert len(parse_standalone_roll(lower).records) == 3


def test_find_latest_roll_by_modification_time(tmp_path) -> None:
    older = tmp_path / f"{PREFIX}{'A' * 64}.log"
    newer = tmp_path / f"{PREFIX}{'B' * 64}.log"
    older.write_text("", encoding="utf-8")
    newer.write_text("", encoding="utf-8")
    (tmp_path / f"{PREFIX}{'C' * 64}.tmp").write_text("", encoding="utf-8")
    os.utime(older, ns=(2_000_000_000_000_000_000, 2_000_000_000_000_000_000))
    os.utime(newer, ns=(1_000_000_000_000_000_000, 1_000_000_000_000_000_000))

    assert find_latest_roll(tmp_path, PREFIX) == older


def test_find_latest_roll_without_candidates(tmp_path) -> None:
    (tmp_path / "other.log").write_text("", encoding="utf-8")

    with pytest.raises(FileNotFoundError):
        find_latest_roll(tmp_path, PREFIX)


def test_invalid_prefix_is_rejected(tmp_path) -> None:
    with pytest.raises(BuildError):
        write_standalone_roll(tmp_path, prefix="a/b", on_error=OnHashError.EMPTY_DIGEST)


def test_find_latest_roll_takes_the_prefix_literally(tmp_path) -> None:
    make_tree(tmp_path, {"a.txt": b"alpha\n"})
    roll_path = write_standalone_roll(tmp_path, prefix="Roll[1]-", on_error=OnHashError.EMPTY_DIGEST, workers=1)
    (tmp_path / f"Roll1-{'A' * 64}.log").write_text("", encoding="utf-8")

    assert find_latest_roll(tmp_path, "Roll[1]-") == roll_path
    with pytest.raises(FileNotFoundError):
        find_latest_roll(tmp_path, "Roll?-")


def test_failed_write_leaves_no_temp_file(tmp_path, monkeypatch) -> None:
    root = make_tree(tmp_path)
    monkeypatch.setattr(builder, "format_record_line", lambda record: "bad\udcff.txt|1|")

    with pytest.raises(UnicodeEncodeError):
        _generate(root)

    assert not list(root.glob("*.tmp"))
    assert not list(root.glob("*.log"))
