"""Document text extraction for TenderPilot."""

from __future__ import annotations

import io
import re
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Mapping, Protocol

import pandas as pd
from langchain_community.document_loaders import Docx2txtLoader, PyPDFLoader

from tenderpilot.errors import ExtractionFailed, UnsupportedFormat
from tenderpilot.metrics.observability import PipelineMetrics, get_logger
from tenderpilot.models import file_extension

SUPPORTED_EXTENSIONS: tuple[str, ...] = ("txt", "pdf", "docx", "xlsx", "xls")


@dataclass(frozen=True)
class ExtractionConfig:
    """Configuration for text extraction."""

    encoding: str = "utf-8-sig"
    csv_separator: str = ","


class TextExtractor(Protocol):
    """Protocol for extraction implementations."""

    def extract(self, name: str, data: bytes) -> str:
        """Return the plain text of the named document blob."""


def _normalize_run(raw: str) -> str:
    # Collapses whitespace only; every other character passes through unchanged.
    return re.sub(r"\s+", " ", raw).strip()


def ensure_supported(name: str) -> str:
    """Return the dispatch extension for ``name`` or raise ``UnsupportedFormat``."""

    extension = file_extension(name)
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormat(f"Unsupported file type: {extension or '<none>'}")
    return extension


class LangChainTextExtractor:
    """Extract plain text via LangChain loaders for PDF/DOCX and pandas for workbooks.

    Extraction is fail-closed: any reader error is re-raised as
    ``ExtractionFailed`` carrying the original file name, and no partial text
    is returned.
    """

    _logger = get_logger("ingestion")

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self._config = config or ExtractionConfig()
        self._handlers: Mapping[str, Callable[[bytes], str]] = {
            "txt": self._extract_text,
            "pdf": self._extract_pdf,
            "docx": self._extract_docx,
            "xlsx": self._extract_workbook,
            "xls": self._extract_workbook,
        }

    def extract(self, name: str, data: bytes) -> str:
        extension = ensure_supported(name)
        handler = self._handlers[extension]

        start = time.perf_counter()
        try:
            text = handler(data)
        except Exception as exc:
            self._logger.warning("extraction.failed", name=name, kind=extension, detail=str(exc))
            raise ExtractionFailed(f"Failed to parse {name}: {exc}") from exc

        duration = time.perf_counter() - start
        PipelineMetrics.observe_extraction(extension, duration, len(text))
        self._logger.info(
            "extraction.complete",
            name=name,
            kind=extension,
            characters=len(text),
            duration_seconds=duration,
        )
        return text

    def _extract_text(self, data: bytes) -> str:
        return data.decode(self._config.encoding)

    def _extract_pdf(self, data: bytes) -> str:
        with self._spooled(data, ".pdf") as path:
            pages = PyPDFLoader(str(path)).load()
        rendered: list[str] = []
        has_text = False
        for number, page in enumerate(pages, start=1):
            page_text = _normalize_run(page.page_content)
            has_text = has_text or bool(page_text)
            rendered.append(f"[Page {number}]\n{page_text}\n\n")
        if not has_text:
            raise ValueError("no extractable text found; the PDF may be scanned or image-only")
        return "".join(rendered)

    def _extract_docx(self, data: bytes) -> str:
        with self._spooled(data, ".docx") as path:
            documents = Docx2txtLoader(str(path)).load()
        return "\n".join(document.page_content for document in documents)

    def _extract_workbook(self, data: bytes) -> str:
        # First sheet only; multi-sheet workbooks are not aggregated.
        frame = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=str)
        rendered = frame.to_csv(
            index=False,
            header=False,
            sep=self._config.csv_separator,
            lineterminator="\n",
        )
        return rendered.rstrip("\n")

    @staticmethod
    @contextmanager
    def _spooled(data: bytes, suffix: str) -> Iterator[Path]:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / f"upload{suffix}"
            destination.write_bytes(data)
            yield destination
