"""Pydantic models for the TenderPilot API."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from tenderpilot.models import ActivityRecord, FileDescriptor, QAPair, VaultDocument


class QAPairModel(BaseModel):
    question: str
    answer: str

    @classmethod
    def from_domain(cls, pair: QAPair) -> "QAPairModel":
        return cls(question=pair.question, answer=pair.answer)


class VaultDocumentModel(BaseModel):
    id: str = Field(..., description="Stable identifier for the vault document")
    name: str = Field(..., description="Original file name")
    category: str = Field(..., description="POLICY or PAST_BID")
    kind: str = Field(..., description="Inferred file kind (PDF, DOCX, XLSX, TXT)")
    size: str
    date: str
    status: str
    characters: int = Field(..., ge=0, description="Length of the extracted text")

    @classmethod
    def from_domain(cls, document: VaultDocument) -> "VaultDocumentModel":
        return cls(
            id=document.id,
            name=document.name,
            category=document.category.value,
            kind=document.kind.value,
            size=document.size,
            date=document.date,
            status=document.status.value,
            characters=len(document.content),
        )


class VaultListResponse(BaseModel):
    documents: List[VaultDocumentModel]


class ActivityRecordModel(BaseModel):
    id: str
    name: str
    kind: str
    size: str
    date: str
    status: str
    results: Optional[List[QAPairModel]] = None

    @classmethod
    def from_domain(cls, record: ActivityRecord) -> "ActivityRecordModel":
        results = [QAPairModel.from_domain(pair) for pair in record.results] if record.results is not None else None
        return cls(
            id=record.id,
            name=record.name,
            kind=record.kind.value,
            size=record.size,
            date=record.date,
            status=record.status.value,
            results=results,
        )


class ActivityListResponse(BaseModel):
    records: List[ActivityRecordModel]


class FileDescriptorModel(BaseModel):
    name: str
    size: str
    kind: str

    @classmethod
    def from_domain(cls, descriptor: FileDescriptor) -> "FileDescriptorModel":
        return cls(name=descriptor.name, size=descriptor.size, kind=descriptor.kind.value)


class SessionResponse(BaseModel):
    state: str = Field(..., description="IDLE, FILE_SELECTED, ANALYZING or RESULTED")
    file: Optional[FileDescriptorModel] = None
    results: List[QAPairModel] = Field(default_factory=list)
    error: Optional[str] = None
    notice: Optional[str] = None


class StatsResponse(BaseModel):
    active_bids: int
    documents_indexed: int
    recent_tenders: int
