"""Shared domain models used across the TenderPilot pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Mapping, Sequence

from tenderpilot.errors import UnsupportedFormat

VAULT_DATE_FORMAT = "%d/%m/%Y"
ACTIVITY_DATE_FORMAT = "%d/%m/%Y, %H:%M:%S"


class Category(str, Enum):
    POLICY = "POLICY"
    PAST_BID = "PAST_BID"


class FileKind(str, Enum):
    PDF = "PDF"
    DOCX = "DOCX"
    XLSX = "XLSX"
    TXT = "TXT"


class VaultStatus(str, Enum):
    INDEXED = "INDEXED"
    PROCESSING = "PROCESSING"


class ActivityStatus(str, Enum):
    COMPLETED = "COMPLETED"
    PROCESSING = "PROCESSING"
    PENDING = "PENDING"


_KIND_BY_EXTENSION: Mapping[str, FileKind] = {
    "pdf": FileKind.PDF,
    "docx": FileKind.DOCX,
    "xlsx": FileKind.XLSX,
    "xls": FileKind.XLSX,
    "txt": FileKind.TXT,
}


def file_extension(name: str) -> str:
    """Return the lower-cased extension of ``name`` without the leading dot."""

    return PurePath(name).suffix.lower().lstrip(".")


def infer_kind(name: str) -> FileKind:
    extension = file_extension(name)
    try:
        return _KIND_BY_EXTENSION[extension]
    except KeyError:
        raise UnsupportedFormat(f"Unsupported file type: {extension or '<none>'}") from None


def format_size(num_bytes: int) -> str:
    return f"{num_bytes / 1024 / 1024:.2f} MB"


@dataclass(frozen=True)
class QAPair:
    """One extracted tender question with its drafted answer."""

    question: str
    answer: str

    def to_dict(self) -> dict[str, str]:
        return {"question": self.question, "answer": self.answer}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QAPair":
        return cls(question=str(data["question"]), answer=str(data["answer"]))


@dataclass(frozen=True)
class VaultDocument:
    """Reference knowledge (policy or past bid) stored in the vault."""

    id: str
    name: str
    content: str
    category: Category
    size: str
    date: str
    kind: FileKind
    status: VaultStatus = VaultStatus.INDEXED

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "category": self.category.value,
            "size": self.size,
            "date": self.date,
            "kind": self.kind.value,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VaultDocument":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            content=str(data["content"]),
            category=Category(data["category"]),
            size=str(data["size"]),
            date=str(data["date"]),
            kind=FileKind(data["kind"]),
            status=VaultStatus(data.get("status", VaultStatus.INDEXED.value)),
        )


@dataclass(frozen=True)
class ActivityRecord:
    """Persisted outcome of one tender analysis run."""

    id: str
    name: str
    kind: FileKind
    size: str
    date: str
    status: ActivityStatus
    results: Sequence[QAPair] | None = None

    @property
    def resumable(self) -> bool:
        return self.status is ActivityStatus.COMPLETED and bool(self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "size": self.size,
            "date": self.date,
            "status": self.status.value,
            "results": [pair.to_dict() for pair in self.results] if self.results is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActivityRecord":
        raw_results = data.get("results")
        results = tuple(QAPair.from_dict(item) for item in raw_results) if raw_results is not None else None
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            kind=FileKind(data["kind"]),
            size=str(data["size"]),
            date=str(data["date"]),
            status=ActivityStatus(data["status"]),
            results=results,
        )


@dataclass(frozen=True)
class FileDescriptor:
    """Serialisable description of the file currently open in the workspace."""

    name: str
    size: str
    kind: FileKind

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "size": self.size, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FileDescriptor":
        return cls(name=str(data["name"]), size=str(data.get("size", format_size(0))), kind=FileKind(data["kind"]))


@dataclass(frozen=True)
class SessionCache:
    """Best-effort snapshot of the open analysis, kept only to survive a restart."""

    file: FileDescriptor
    results: Sequence[QAPair] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file.to_dict(), "results": [pair.to_dict() for pair in self.results]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionCache":
        return cls(
            file=FileDescriptor.from_dict(data["file"]),
            results=tuple(QAPair.from_dict(item) for item in data["results"]),
        )
