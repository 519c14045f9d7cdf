"""Tests for the JSON-lines scratchpad."""

from pathlib import Path

import pytest

from tradebench.memory.scratchpad import Scratchpad


@pytest.fixture
def pad(tmp_path: Path) -> Scratchpad:
    return Scratchpad(tmp_path / "notes" / "scratchpad.jsonl")


def test_init_creates_file(pad: Scratchpad) -> None:
    """init creates the parent directory and an empty file."""

    pad.init()
    assert pad.path.exists()
    assert pad.recent() == []


def test_add_and_recent(pad: Scratchpad) -> None:
    """Entries come back oldest first and keep author and tags."""

    pad.add("first")
    pad.add("second", tags=["x"], author="operator")
    entries = pad.recent()
    assert [e.message for e in entries] == ["first", "second"]
    assert entries[1].author == "operator"
    assert entries[1].tags == ["x"]


def test_recent_limit(pad: Scratchpad) -> None:
    """Only the newest *limit* entries are returned."""

    for i in range(5):
        pad.add(f"note {i}")
    assert [e.message for e in pad.recent(2)] == ["note 3", "note 4"]
    assert len(pad.recent(0)) == 1


def test_empty_message_rejected(pad: Scratchpad) -> None:
    """Blank notes are refused."""

    with pytest.raises(ValueError):
        pad.add("   ")


def test_string_tags_rejected(pad: Scratchpad) -> None:
    """A bare string is not split into single-character tags."""

    with pytest.raises(ValueError):
        pad.add("note", tags="risk")
    assert pad.recent() == []


def test_unreadable_lines_are_skipped(pad: Scratchpad) -> None:
    """A corrupt line does not hide the rest of the file."""

    pad.add("good")
    with pad.path.open("a", encoding="utf-8") as f:
        f.write("{not json\n")
    pad.add("also good")
    assert [e.message for e in pad.recent()] == ["good", "also good"]


def test_clear(pad: Scratchpad) -> None:
    """clear removes every note."""

    pad.add("bye")
    pad.clear()
    assert pad.recent() == []
