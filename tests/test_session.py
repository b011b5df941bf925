from __future__ import annotations

from pathlib import Path

from tenderpilot.models import FileDescriptor, FileKind, QAPair, SessionCache
from tenderpilot.storage import FileSessionSlot


def _session() -> SessionCache:
    return SessionCache(
        file=FileDescriptor(name="tender.pdf", size="0.10 MB", kind=FileKind.PDF),
        results=(QAPair(question="Q1", answer="A1"),),
    )


def test_write_then_read_restores_session(tmp_path: Path):
    slot = FileSessionSlot(tmp_path / "nested" / "session.json")
    slot.write(_session())
    assert slot.read() == _session()


def test_missing_or_corrupt_slot_reads_as_empty(tmp_path: Path):
    slot = FileSessionSlot(tmp_path / "session.json")
    assert slot.read() is None
    slot.path.write_text("{not json", encoding="utf-8")
    assert slot.read() is None


def test_session_without_results_is_ignored(tmp_path: Path):
    slot = FileSessionSlot(tmp_path / "session.json")
    slot.write(SessionCache(file=_session().file, results=()))
    assert slot.read() is None


def test_clear_removes_file(tmp_path: Path):
    slot = FileSessionSlot(tmp_path / "session.json")
    slot.write(_session())
    slot.clear()
    slot.clear()
    assert not slot.path.exists()
    assert slot.read() is None
