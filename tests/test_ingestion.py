"""Tests for document text extraction."""

from __future__ import annotations

from io import BytesIO

import pytest
from docx import Document as WordDocument
from langchain_core.documents import Document
from openpyxl import Workbook

from tenderpilot.errors import ExtractionFailed, UnsupportedFormat
from tenderpilot.ingestion import service
from tenderpilot.ingestion.service import LangChainTextExtractor, ensure_supported


def test_plain_text_round_trip_is_exact() -> None:
    content = "Line one\n\n  indented  line two\twith tab\n"
    text = LangChainTextExtractor().extract("notes.txt", content.encode("utf-8"))
    assert text == content


def test_invalid_utf8_text_fails() -> None:
    with pytest.raises(ExtractionFailed, match="Failed to parse latin.txt"):
        LangChainTextExtractor().extract("latin.txt", "café".encode("latin-1"))


def test_docx_paragraphs_are_extracted() -> None:
    doc = WordDocument()
    doc.add_paragraph("Supplier must hold ISO 27001.")
    doc.add_paragraph("Describe your approach to social value.")
    buffer = BytesIO()
    doc.save(buffer)

    text = LangChainTextExtractor().extract("tender.docx", buffer.getvalue())

    assert "Supplier must hold ISO 27001." in text
    assert "Describe your approach to social value." in text


def test_workbook_first_sheet_rendered_as_csv() -> None:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Question", "Weighting"])
    sheet.append(["How is data protected?", "20%"])
    other = workbook.create_sheet("Ignored")
    other.append(["not", "exported"])
    buffer = BytesIO()
    workbook.save(buffer)

    text = LangChainTextExtractor().extract("questions.xlsx", buffer.getvalue())

    assert text == "Question,Weighting\nHow is data protected?,20%"


def test_pdf_pages_are_labelled(monkeypatch: pytest.MonkeyPatch) -> None:
    class StubLoader:
        def __init__(self, path: str) -> None:
            self.path = path

        def load(self) -> list[Document]:
            return [
                Document(page_content="Section 1  Scope", metadata={"page": 0}),
                Document(page_content="Section 2\n\nPricing", metadata={"page": 1}),
            ]

    monkeypatch.setattr(service, "PyPDFLoader", StubLoader)

    text = LangChainTextExtractor().extract("tender.pdf", b"%PDF-1.4 stub")

    assert text == "[Page 1]\nSection 1 Scope\n\n[Page 2]\nSection 2 Pricing\n\n"


def test_image_only_pdf_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    class BlankLoader:
        def __init__(self, path: str) -> None:
            pass

        def load(self) -> list[Document]:
            return [Document(page_content="   ", metadata={"page": 0})]

    monkeypatch.setattr(service, "PyPDFLoader", BlankLoader)

    with pytest.raises(ExtractionFailed, match="scan.pdf"):
        LangChainTextExtractor().extract("scan.pdf", b"%PDF-1.4 stub")


def test_corrupt_docx_raises_extraction_failed() -> None:
    with pytest.raises(ExtractionFailed, match="Failed to parse broken.docx"):
        LangChainTextExtractor().extract("broken.docx", b"this is not a zip archive")


def test_unsupported_extension_is_rejected() -> None:
    with pytest.raises(UnsupportedFormat):
        LangChainTextExtractor().extract("slides.pptx", b"data")
    assert ensure_supported("Budget.XLS") == "xls"


def test_pdf_text_keeps_superscripts_and_ligatures(monkeypatch: pytest.MonkeyPatch) -> None:
    class StubLoader:
        def __init__(self, path: str) -> None:
            pass

        def load(self) -> list[Document]:
            return [Document(page_content="Area 50 m², ﬁre safety, ½\nCO₂ target", metadata={"page": 0})]

    monkeypatch.setattr(service, "PyPDFLoader", StubLoader)

    text = LangChainTextExtractor().extract("site.pdf", b"%PDF-1.4 stub")

    assert text == "[Page 1]\nArea 50 m², ﬁre safety, ½ CO₂ target\n\n"


def test_leading_byte_order_mark_is_stripped() -> None:
    text = LangChainTextExtractor().extract("bom.txt", "\ufeffHello".encode("utf-8"))
    assert text == "Hello"
