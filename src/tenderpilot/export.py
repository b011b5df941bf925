"""Word export of an analysed tender's question/answer pairs."""

from __future__ import annotations

from io import BytesIO
from pathlib import PurePath
from typing import Sequence

from docx import Document

from tenderpilot.models import QAPair

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def export_filename(source_name: str | None) -> str:
    stem = PurePath(source_name).stem if source_name else "Tender"
    return f"{stem}_Response.docx"


def build_answer_document(pairs: Sequence[QAPair], source_name: str | None = None) -> bytes:
    """Render ``pairs`` in order to a .docx file and return its bytes."""

    doc = Document()
    doc.add_heading("Tender Response", level=0)
    if source_name:
        doc.add_paragraph(f"Source document: {source_name}")
    for index, pair in enumerate(pairs, start=1):
        doc.add_heading(f"Q{index}. {pair.question}", level=2)
        for block in pair.answer.split("\n\n"):
            doc.add_paragraph(block)
    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()
