"""
Relay Retrieval Context - personalization and document context for a turn

Builds the text appended to the system prompt from the vector store:
- selected-document chunks (user_<id>_docs namespace)
- remembered facts from past turns (the user's own namespace), split into
  profile/preference facts and general conversation

Retrieval never fails a turn: any provider error degrades to an empty
section and the turn continues without that context.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from config import RuntimeConfig, runtime_config
from errors import ExternalServiceError, log_error
from logging_config import log_rag
from services.embeddings import EmbeddingService
from services.vectorstore import VectorMatch, VectorStore

from .documents import DocChunk, DocumentRetriever, format_document_context

logger = logging.getLogger(__name__)

PERSONAL_QUERY_PATTERN = re.compile(r"\b(my|tell me my|what is my|what's my|my favorite|my fav)\b")

PERSONAL_QUERY_EXPANSION = (
    "user personal information profile preference favorite likes dislikes "
    "company ownership identity facts about me"
)
PROFILE_HINT = "user profile preference favorite company ownership identity personal details"

# Profile facts kept regardless of threshold
PROFILE_FORCE_INCLUDE = 3


def is_personal_query(text: str) -> bool:
    return bool(PERSONAL_QUERY_PATTERN.search(text.lower()))


@dataclass
class RetrievedFact:
    id: str
    score: float
    text: str
    role: str = ""
    is_profile: bool = False
    is_preference: bool = False
    document_id: Optional[str] = None

    @classmethod
    def from_match(cls, match: VectorMatch) -> "RetrievedFact":
        meta = match.metadata or {}
        return cls(
            id=match.id,
            score=match.score or 0.0,
            text=meta.get("text", ""),
            role=meta.get("role", ""),
            is_profile=bool(meta.get("isProfile")),
            is_preference=bool(meta.get("isPreference")),
            document_id=meta.get("documentId"),
        )

    @property
    def is_personal(self) -> bool:
        return self.is_profile or self.is_preference


@dataclass
class AssembledContext:
    facts: List[RetrievedFact] = field(default_factory=list)
    documents: List[DocChunk] = field(default_factory=list)
    facts_text: str = ""
    documents_text: str = ""

    @property
    def text(self) -> str:
        """Combined block appended to the system prompt (documents first)."""
        parts = [p for p in (self.documents_text, self.facts_text) if p]
        return "\n\n".join(parts)

    def __bool__(self) -> bool:
        return bool(self.facts_text or self.documents_text)


def select_facts(
    candidates: Sequence[RetrievedFact],
    threshold: float = 0.3,
    min_results: int = 3,
    top_k: int = 15,
) -> List[RetrievedFact]:
    """Merge, threshold and cap retrieved facts.

    - duplicates by id keep the higher score
    - if fewer than min_results clear the threshold, the top min_results by
      score are used instead, so any candidates at all yield a result
    - the top profile facts are always included and survive the top_k cap
    """
    best: Dict[str, RetrievedFact] = {}
    for fact in candidates:
        previous = best.get(fact.id)
        if previous is None or fact.score > previous.score:
            best[fact.id] = fact
    deduped = list(best.values())
    by_score = sorted(deduped, key=lambda f: f.score, reverse=True)

    selected = [f for f in deduped if f.score >= threshold]
    if len(selected) < min_results:
        selected = by_score[:min_results]

    profile_top = [f for f in by_score if f.is_profile][:PROFILE_FORCE_INCLUDE]
    forced = {f.id for f in profile_top}

    merged: Dict[str, RetrievedFact] = {}
    for fact in selected + profile_top:
        merged[fact.id] = fact
    if len(merged) <= top_k:
        return list(merged.values())

    # the cap drops the weakest unforced facts, never the forced profile ones
    room = max(top_k - len(forced), 0)
    others = [f for f in by_score if f.id in merged and f.id not in forced][:room]
    keep = forced | {f.id for f in others}
    return [f for f in merged.values() if f.id in keep]


def format_facts_context(facts: Sequence[RetrievedFact]) -> str:
    """Render facts as the personal-information and history sections."""
    if not facts:
        return ""

    personal = [f for f in facts if f.is_personal and f.text]
    conversation = [f for f in facts if not f.is_personal and f.text]

    lines = [
        "## USER PERSONAL INFORMATION (IMPORTANT: Use this when answering questions about the user)",
        "The following information has been retrieved from previous conversations with this user. "
        "ALWAYS reference and use this information when the user asks about their preferences, "
        "facts, or personal details:",
        "",
    ]
    if personal:
        lines.extend(f"[{i}] {fact.text}" for i, fact in enumerate(personal, 1))
        lines.append("")

    if conversation:
        lines.append("## RELEVANT CONVERSATION HISTORY:")
        lines.append("Use this context to maintain continuity and reference previous discussions:")
        lines.append("")
        for i, fact in enumerate(conversation, 1):
            speaker = "User said" if fact.role == "user" else "You said"
            lines.append(f"[{i}] {speaker}: {fact.text}")
        lines.append("")

    lines.append(
        'REMEMBER: When the user asks "tell me my X" or "what is my Y", use the information above. '
        "Do NOT say you don't have access - you have this information from their conversation history."
    )
    return "\n".join(lines)


class RetrievalContextAssembler:
    """Builds the retrieval block for one turn."""

    def __init__(
        self,
        embedder: EmbeddingService,
        store: VectorStore,
        config: Optional[RuntimeConfig] = None,
    ):
        self.embedder = embedder
        self.store = store
        self.config = config or runtime_config
        self.documents = DocumentRetriever(store)

    async def build(
        self,
        user_id: Optional[str],
        message: str,
        selected_documents: Optional[Sequence[str]] = None,
    ) -> AssembledContext:
        """Assemble document and conversation context; never raises."""
        context = AssembledContext()
        if not user_id or not message or not message.strip():
            return context

        if selected_documents:
            try:
                context.documents = await self.retrieve_documents(user_id, message, selected_documents)
                context.documents_text = format_document_context(context.documents)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_error(logger, e, context="DocRAG", include_traceback=False)

        if self.config.rag_enabled:
            try:
                context.facts = await self.retrieve_facts(user_id, message)
                context.facts_text = format_facts_context(context.facts)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log_error(logger, e, context="RAG", include_traceback=False)

        return context

    async def retrieve_documents(
        self, user_id: str, message: str, selected_documents: Sequence[str]
    ) -> List[DocChunk]:
        vector = await self.embedder.embed(message)
        if not vector:
            return []
        return await self.documents.query_selected_documents(
            user_id,
            vector,
            selected_documents,
            top_k_per_doc=self.config.doc_top_k_per_doc,
            min_score=self.config.doc_min_score,
        )

    async def retrieve_facts(self, user_id: str, message: str) -> List[RetrievedFact]:
        """Query the user's namespace twice (general and profile) and merge."""
        start = time.time()

        query_text = message
        if is_personal_query(message):
            query_text = f"{message}\n\n{PERSONAL_QUERY_EXPANSION}"

        vector = await self.embedder.embed(query_text)
        if not vector:
            log_rag(logger, "skip", reason="empty-embedding")
            return []

        try:
            profile_vector = await self.embedder.embed(f"{query_text}\n\n{PROFILE_HINT}")
        except ExternalServiceError as e:
            logger.debug(f"Profile embedding failed, reusing query embedding: {e}")
            profile_vector = []
        profile_vector = profile_vector or vector

        general = await self.store.query(user_id, vector, self.config.rag_top_k)
        profile = await self._query_profile(user_id, profile_vector)

        candidates = [RetrievedFact.from_match(m) for m in general + profile]
        facts = select_facts(
            candidates,
            threshold=self.config.rag_threshold,
            min_results=self.config.rag_min_results,
            top_k=self.config.rag_top_k,
        )
        log_rag(
            logger, "retrieve",
            user=user_id, candidates=len(candidates), facts=len(facts),
            ms=int((time.time() - start) * 1000),
        )
        return facts

    async def _query_profile(self, user_id: str, vector: List[float]) -> List[VectorMatch]:
        top_k = self.config.rag_profile_top_k
        try:
            return await self.store.query(user_id, vector, top_k, where={"isProfile": True})
        except ExternalServiceError as e:
            logger.warning(f"Profile query failed, retrying without filter: {e}")

        try:
            matches = await self.store.query(user_id, vector, top_k * 2)
        except ExternalServiceError as e:
            logger.warning(f"Unfiltered profile query failed: {e}")
            return []
        return [m for m in matches if (m.metadata or {}).get("isProfile")][:top_k]
