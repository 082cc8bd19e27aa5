"""
Relay Document Retrieval - selected-document context for a turn

Queries the user's `user_<id>_docs` namespace scoped to the documents the
client selected, keeps the best chunks per document and renders them with
framing that depends on the document type (spreadsheet, word, pdf).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from errors import ExternalServiceError
from logging_config import log_rag
from services.vectorstore import VectorMatch, VectorStore, docs_namespace

logger = logging.getLogger(__name__)

DOC_CONTEXT_HEADER = "**📄 RELEVANT DOCUMENT CONTEXT:**"

# Used when nothing clears min_score but the selected documents did match
FALLBACK_CHUNKS = 10

_PRIORITY = {"high": 0, "medium": 1, "low": 2}


@dataclass
class DocChunk:
    id: str
    content: str
    score: float
    document_id: str
    document_name: str = ""
    chunk_index: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_match(cls, match: VectorMatch) -> "DocChunk":
        meta = match.metadata or {}
        return cls(
            id=match.id,
            content=meta.get("text", ""),
            score=match.score or 0.0,
            document_id=meta.get("documentId", ""),
            document_name=meta.get("documentName", ""),
            chunk_index=meta.get("chunkIndex"),
            metadata=meta,
        )

    @property
    def doc_type(self) -> str:
        chunk_type = self.metadata.get("chunkType") or ""
        for kind in ("docx", "xlsx", "csv", "pdf"):
            if chunk_type.startswith(f"{kind}_") or self.metadata.get(f"is{kind.upper()}"):
                return kind
        return "other"


class DocumentRetriever:
    """Retrieves chunks from a user's selected documents."""

    def __init__(self, store: VectorStore):
        self.store = store

    async def query_selected_documents(
        self,
        user_id: str,
        query_vector: List[float],
        selected_documents: Sequence[str],
        top_k_per_doc: int = 10,
        min_score: float = 0.15,
    ) -> List[DocChunk]:
        if not selected_documents or not query_vector:
            return []

        namespace = docs_namespace(user_id)
        selected = list(dict.fromkeys(selected_documents))
        total_top_k = max(20, top_k_per_doc * len(selected) * 2)

        try:
            matches = await self.store.query(
                namespace, query_vector, total_top_k, where={"documentId": {"$in": selected}}
            )
        except ExternalServiceError as e:
            logger.warning(f"Filtered document query failed, retrying unfiltered: {e}")
            try:
                unfiltered = await self.store.query(namespace, query_vector, total_top_k * 2)
            except ExternalServiceError as retry_error:
                logger.error(f"Document query failed: {retry_error}")
                return []
            matches = [m for m in unfiltered if (m.metadata or {}).get("documentId") in selected]

        chunks = [DocChunk.from_match(m) for m in matches]
        in_selection = [c for c in chunks if c.document_id and c.document_id in selected]

        grouped: Dict[str, List[DocChunk]] = {doc_id: [] for doc_id in selected}
        for chunk in in_selection:
            if chunk.score >= min_score:
                grouped[chunk.document_id].append(chunk)

        limited: List[DocChunk] = []
        for doc_id in selected:
            ranked = sorted(grouped[doc_id], key=lambda c: c.score, reverse=True)
            limited.extend(ranked[:top_k_per_doc])

        if not limited and in_selection:
            logger.info("No document chunks passed the score threshold, using top chunks")
            ranked = sorted(in_selection, key=lambda c: c.score, reverse=True)
            limited = ranked[:min(FALLBACK_CHUNKS, len(chunks))]

        log_rag(logger, "docs", namespace=namespace, documents=len(selected), chunks=len(limited))
        return limited


# -----------------------------------------------------------------------------
# Formatting
# -----------------------------------------------------------------------------

_SECTION_TITLES = {
    "docx": "**📄 Word Document Analysis:**",
    "xlsx": "**📊 Excel Workbook Analysis:**",
    "csv": "**📊 CSV Data Analysis:**",
    "pdf": "**📄 PDF Document Analysis:**",
    "other": "**📄 Other Document Content:**",
}

DOC_INSTRUCTIONS = (
    "**Instructions:** Use this document context to provide accurate, data-driven responses. "
    "Reference specific values, columns, rows, sheets, sections, tables, lists, and pages when relevant. "
    "For spreadsheets (Excel, CSV), prioritize summaries, sheet overviews and statistics for general "
    "questions, and specific columns/rows for detailed analysis. For Word and PDF documents, prioritize "
    "document summaries and outlines for general questions, and specific sections/tables/pages for "
    "detailed analysis."
)


def _section_label(chunk: DocChunk) -> str:
    return f"{chunk.document_name or 'Unknown Document'} - Section {(chunk.chunk_index or 0) + 1}"


def _chunk_label(chunk: DocChunk) -> str:
    """Bracketed label for one chunk, framed by its document type."""
    meta = chunk.metadata
    name = chunk.document_name or "Unknown Document"
    chunk_type = meta.get("chunkType") or ""

    if chunk_type in ("docx_summary", "pdf_summary"):
        return f"Document Summary - {name}"
    if chunk_type in ("docx_outline", "pdf_outline"):
        return f"Document Outline - {name}"
    if chunk_type == "docx_paragraph":
        paragraph_range = f" {meta['paragraphRange']}" if meta.get("paragraphRange") else ""
        return f"Paragraphs{paragraph_range} - {name}"
    if chunk_type == "pdf_page":
        return f"Page {meta.get('pageNumber') or 'Unknown'} - {name}"
    if chunk_type == "xlsx_summary":
        return f"Workbook Summary - {name}"
    if chunk_type == "xlsx_sheet_overview":
        sheet = f"Sheet: {meta['sheetName']} - " if meta.get("sheetName") else ""
        return f"{sheet}{name}"
    if chunk_type == "xlsx_column":
        sheet = f" - Sheet: {meta['sheetName']}" if meta.get("sheetName") else ""
        return f"Column: {meta.get('columnName') or 'Unknown Column'}{sheet} - {name}"
    if chunk_type == "csv_summary":
        return f"Summary - {name}"
    if chunk_type == "csv_statistics":
        return f"Statistical Analysis - {name}"
    if chunk_type == "csv_column":
        column_type = f" ({meta['columnType']})" if meta.get("columnType") else ""
        return f"Column: {meta.get('columnName') or 'Unknown Column'}{column_type} - {name}"
    if chunk_type == "csv_rows":
        row_range = f" {meta['rowRange']}" if meta.get("rowRange") else ""
        return f"Rows{row_range} - {name}"
    return _section_label(chunk)


def format_document_context(chunks: Sequence[DocChunk]) -> str:
    """Render retrieved document chunks as a system-prompt section."""
    if not chunks:
        return ""

    by_type: Dict[str, List[DocChunk]] = {kind: [] for kind in _SECTION_TITLES}
    for chunk in chunks:
        by_type[chunk.doc_type].append(chunk)

    parts = [f"{DOC_CONTEXT_HEADER}\n"]
    for kind, title in _SECTION_TITLES.items():
        group = by_type[kind]
        if not group:
            continue
        if kind != "other":
            group = sorted(group, key=lambda c: _PRIORITY.get(c.metadata.get("priority"), 2))
        parts.append(title)
        for chunk in group:
            label = _chunk_label(chunk) if kind != "other" else _section_label(chunk)
            parts.append(f"[{label}] (Relevance: {chunk.score * 100:.0f}%)\n{chunk.content}\n")

    parts.append(f"\n{DOC_INSTRUCTIONS}")
    return "\n".join(parts)
