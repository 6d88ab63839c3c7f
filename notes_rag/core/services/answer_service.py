"""Answer service - reflective answer synthesis over retrieved notes.

The answer loop is a small state machine:

    INIT -> GENERATING -> REFLECTING -> RETRIEVING_MORE -> GENERATING ...
                          REFLECTING -> DONE

INIT gathers and reranks sources, GENERATING writes (or improves) the
answer, REFLECTING asks the model to critique it and proposes follow-up
searches, RETRIEVING_MORE runs them and extends the context. The loop ends
when the critique is satisfied, yields no follow-up queries, nothing new is
found, or the round cap is reached.
"""

import logging
import re
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from ..errors import ProviderError
from ..models.document import SearchResult
from ..models.reflection import AnswerResult, ReflectionPhase, ReflectionState
from ..protocols.document_store import DocumentStoreProtocol
from ..protocols.llm import LLMProtocol
from ..strategies.scoring import detect_language
from .chunker import SemanticChunker
from .hyde import HyDEGenerator
from .query_optimizer import QueryOptimizer
from .reranker import MMRReranker, unique_by_document
from .retriever import Retriever

logger = logging.getLogger(__name__)

MAX_ROUNDS = 5

NO_INFORMATION_MESSAGE = (
    "No relevant information was found in your notes for this question."
)
ERROR_MESSAGE = (
    "Sorry, something went wrong while answering this question. "
    "Please try again."
)

SYSTEM_PROMPT = """You are a knowledge base Q&A assistant.

Rules:
- Answer ONLY from the numbered sources in the context. Do not add facts from elsewhere.
- Cite every source you use as [n], where n is the source number.
- Tag each major claim with its confidence: [High], [Medium] or [Low].
- If the sources do not fully answer the question, say what is missing.
- Answer directly. No preamble, do not repeat the question."""

LANGUAGE_PROMPTS = {
    "chinese": "Answer in Chinese.",
    "english": "Answer in English.",
}

ANSWER_PROMPT = """Context:

{context}

---
Question: {question}

{language}"""

IMPROVE_PROMPT = """New information was found for the gaps you identified:

{new_information}

---
Improve your previous answer using this information while keeping what was already right. Keep citing sources as [n] and tagging claims [High]/[Medium]/[Low]. Return only the improved answer."""

CRITIQUE_PROMPT = """Evaluate your previous answer to: "{question}"

Think about:
1. What specific information is missing from the answer?
2. Which assertions lack sufficient evidence in the sources?
3. Which related aspects were left unaddressed?

If the answer is complete, reply exactly: "No additional information needed."
Otherwise list 1-3 specific search queries that would fill the gaps, as a numbered list, one query per line."""

_CITATION_RE = re.compile(r"\[(?:source\s+)?(\d+)\]", re.IGNORECASE)
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.+?)\s*$", re.MULTILINE)
_SUFFICIENT_RE = re.compile(r"no additional|(?<!in)sufficient information", re.IGNORECASE)

ChunkCallback = Callable[[str], None]
ProgressCallback = Callable[[str, int], None]
StageHandler = Callable[[ReflectionState], Awaitable[ReflectionPhase]]


def _progress(state: ReflectionState, stage: str, percent: int) -> None:
    if state.on_progress is None:
        return
    try:
        state.on_progress(stage, percent)
    except Exception as e:
        logger.warning(f"Progress callback failed at '{stage}': {e}")


def is_sufficient(critique: str) -> bool:
    """True if the critique says no more information is needed."""
    return bool(_SUFFICIENT_RE.search(critique))


def extract_follow_up_queries(critique: str, limit: int = 3) -> list[str]:
    """Pull follow-up search queries out of a critique.

    Numbered list items are preferred; lines ending in "?" are used when
    there is no numbered list.
    """
    candidates = _NUMBERED_RE.findall(critique)
    if not candidates:
        candidates = [
            line.strip().lstrip("-* ") for line in critique.splitlines()
            if line.strip().endswith("?")
        ]

    queries: list[str] = []
    for candidate in candidates:
        query = candidate.replace("**", "").strip().strip("\"'“”").strip()
        if len(query) > 5 and query not in queries:
            queries.append(query)
        if len(queries) >= limit:
            break

    return queries


def format_sources(sources: list[SearchResult], start: int = 1) -> str:
    """Format sources as numbered context blocks."""
    return "\n\n".join(
        f"Source [{i}]: {s.document.name}\n{s.content}"
        for i, s in enumerate(sources, start)
    )


class AnswerSynthesizer:
    """Answer questions from retrieved notes with self-reflection."""

    def __init__(
        self,
        llm: LLMProtocol,
        retriever: Retriever,
        query_optimizer: QueryOptimizer,
        hyde: HyDEGenerator,
        reranker: MMRReranker,
        chunker: SemanticChunker,
        document_store: Optional[DocumentStoreProtocol] = None,
        limit: int = 10,
        mmr_lambda: float = 0.5,
        chunks_per_document: int = 2,
        max_rounds: int = MAX_ROUNDS,
        follow_up_limit: int = 3,
        follow_up_results: int = 3,
    ):
        """Initialize answer service.

        Args:
            llm: LLM client.
            retriever: Shared retriever.
            query_optimizer: Query rewriter.
            hyde: HyDE generator.
            reranker: MMR reranker.
            chunker: Semantic chunker.
            document_store: Store used to re-read full documents for chunking.
            limit: Candidates kept after reranking.
            mmr_lambda: MMR relevance weight.
            chunks_per_document: Chunks kept per document.
            max_rounds: Reflection round cap.
            follow_up_limit: Follow-up queries per round.
            follow_up_results: Results fetched per follow-up query.
        """
        self._llm = llm
        self._retriever = retriever
        self._optimizer = query_optimizer
        self._hyde = hyde
        self._reranker = reranker
        self._chunker = chunker
        self._store = document_store
        self._limit = limit
        self._mmr_lambda = mmr_lambda
        self._chunks_per_document = chunks_per_document
        self._max_rounds = min(max_rounds, MAX_ROUNDS)
        self._follow_up_limit = follow_up_limit
        self._follow_up_results = follow_up_results

        self._handlers: dict[ReflectionPhase, StageHandler] = {
            ReflectionPhase.INIT: self._init,
            ReflectionPhase.GENERATING: self._generate,
            ReflectionPhase.REFLECTING: self._reflect,
            ReflectionPhase.RETRIEVING_MORE: self._retrieve_more,
        }

    async def answer_question(
        self,
        query: str,
        on_chunk: Optional[ChunkCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        scope: Optional[str] = None,
    ) -> str:
        """Answer a question and return the formatted answer text."""
        result = await self.answer(
            query, on_chunk=on_chunk, on_progress=on_progress, scope=scope
        )
        return result.text

    async def answer(
        self,
        query: str,
        on_chunk: Optional[ChunkCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        scope: Optional[str] = None,
    ) -> AnswerResult:
        """Run the full reflective answer loop.

        Never raises. Stage failures fall back to the best answer so far,
        or to a generic error message when there is none.

        Args:
            query: User question.
            on_chunk: Streaming callback for the final answer text.
            on_progress: Called with (stage, percent) as the loop advances.
            scope: Folder to search in; defaults to the configured scope.

        Returns:
            Formatted answer with sources and the number of reflection rounds.
        """
        state = ReflectionState(query=query, scope=scope, on_progress=on_progress)
        if not query or not query.strip():
            return AnswerResult(text=NO_INFORMATION_MESSAGE)

        while state.phase is not ReflectionPhase.DONE:
            phase = state.phase
            try:
                state.phase = await self._handlers[phase](state)
            except Exception as e:
                logger.error(f"Answer stage '{phase.value}' failed: {e}")
                if not state.has_answer:
                    return AnswerResult(
                        text=ERROR_MESSAGE,
                        sources=state.sources,
                        reflection_rounds=state.round,
                    )
                state.failed = True
                state.phase = ReflectionPhase.DONE

        if not state.sources:
            _progress(state, "done", 100)
            return AnswerResult(text=NO_INFORMATION_MESSAGE)

        _progress(state, "finalizing", 95)
        await self._finalize(state, on_chunk)
        _progress(state, "done", 100)

        logger.info(
            f"Answered '{query[:50]}' with {len(state.sources)} sources "
            f"after {state.round} reflection rounds"
        )
        return AnswerResult(
            text=self._format_answer(state),
            answer=state.current_answer,
            sources=state.sources,
            reflection_rounds=state.round,
        )

    async def _init(self, state: ReflectionState) -> ReflectionPhase:
        _progress(state, "rewriting", 5)
        state.optimized_query = state.query
        try:
            state.optimized_query = await self._optimizer.rewrite(state.query)
        except Exception as e:
            logger.warning(f"Query rewrite failed: {e}")

        _progress(state, "hyde", 15)
        hyde_results: list[SearchResult] = []
        try:
            hyde = await self._hyde.generate_hypothetical(
                state.optimized_query, self._limit, scope=state.scope
            )
            hyde_results = hyde.results
        except Exception as e:
            logger.warning(f"HyDE failed: {e}")

        _progress(state, "retrieving", 30)
        base_results = await self._retriever.retrieve(
            state.optimized_query, self._limit, scope=state.scope
        )

        merged = unique_by_document(hyde_results + base_results)
        if not merged:
            logger.info(f"No sources found for '{state.query[:50]}'")
            return ReflectionPhase.DONE

        _progress(state, "reranking", 45)
        ranked = self._reranker.rerank(
            merged, state.optimized_query, lambda_=self._mmr_lambda, k=self._limit
        )

        for result in ranked:
            text = await self._read_full_text(result)
            chunks = self._chunker.top_chunks(
                text, state.optimized_query, self._chunks_per_document
            )
            if not chunks:
                state.sources.append(result)
                continue
            for chunk in chunks:
                state.sources.append(replace(result, content=chunk.text))

        state.context = format_sources(state.sources)
        state.initial_context = state.context
        logger.info(
            f"Context: {len(state.sources)} chunks from {len(ranked)} documents"
        )
        return ReflectionPhase.GENERATING

    async def _read_full_text(self, result: SearchResult) -> str:
        if self._store is None:
            return result.content
        try:
            text = await self._store.read(result.document)
        except Exception as e:
            logger.warning(f"Could not re-read {result.document.path}: {e}")
            return result.content
        return text if text.strip() else result.content

    def _answer_messages(self, state: ReflectionState) -> list[dict]:
        language = LANGUAGE_PROMPTS[detect_language(state.query)]
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": ANSWER_PROMPT.format(
                    context=state.context, question=state.query, language=language
                ),
            },
        ]

    async def _generate(self, state: ReflectionState) -> ReflectionPhase:
        conversation = state.conversation

        if not state.has_answer:
            _progress(state, "generating", 55)
            for message in self._answer_messages(state):
                conversation.add(message["role"], message["content"])
            answer = await self._llm.complete(conversation.to_list())
            if not answer or not answer.strip():
                raise ProviderError("Model returned an empty answer")
            conversation.add("assistant", answer)
            state.current_answer = answer.strip()
            return ReflectionPhase.REFLECTING

        conversation.add(
            "user", IMPROVE_PROMPT.format(new_information=state.new_information)
        )
        improved = await self._llm.complete(conversation.to_list())
        conversation.add("assistant", improved)

        if not improved or len(improved.strip()) <= len(state.current_answer) / 2:
            logger.info("Improved answer too short, keeping current answer")
            return ReflectionPhase.DONE

        state.current_answer = improved.strip()
        return ReflectionPhase.REFLECTING

    async def _reflect(self, state: ReflectionState) -> ReflectionPhase:
        if state.round >= self._max_rounds:
            logger.info(f"Reflection cap of {self._max_rounds} rounds reached")
            return ReflectionPhase.DONE

        state.round += 1
        logger.info(f"Reflection round {state.round}/{self._max_rounds}")
        percent = 60 + 30 * (state.round - 1) // self._max_rounds
        _progress(state, f"reflecting ({state.round}/{self._max_rounds})", percent)

        state.conversation.add("user", CRITIQUE_PROMPT.format(question=state.query))
        critique = await self._llm.complete(state.conversation.to_list())
        state.conversation.add("assistant", critique)
        state.critique = critique or ""

        if is_sufficient(state.critique):
            logger.info("Critique found the answer sufficient")
            return ReflectionPhase.DONE

        state.follow_up_queries = extract_follow_up_queries(
            state.critique, self._follow_up_limit
        )
        if not state.follow_up_queries:
            logger.info("No follow-up queries in critique")
            return ReflectionPhase.DONE

        return ReflectionPhase.RETRIEVING_MORE

    async def _retrieve_more(self, state: ReflectionState) -> ReflectionPhase:
        seen = {(s.document.id, s.content) for s in state.sources}
        blocks = []

        for follow_up in state.follow_up_queries:
            results = await self._retriever.retrieve(
                follow_up, self._follow_up_results, scope=state.scope
            )
            fresh = [r for r in results if (r.document.id, r.content) not in seen]
            if not fresh:
                continue

            start = len(state.sources) + 1
            state.sources.extend(fresh)
            seen.update((r.document.id, r.content) for r in fresh)
            blocks.append(f'Regarding: "{follow_up}"\n\n{format_sources(fresh, start)}')

        if not blocks:
            logger.info("Follow-up searches found nothing new")
            return ReflectionPhase.DONE

        state.new_information = "\n\n".join(blocks)
        state.context = f"{state.context}\n\n{state.new_information}"
        logger.info(f"Added {len(blocks)} follow-up blocks to context")
        return ReflectionPhase.GENERATING

    async def _finalize(
        self, state: ReflectionState, on_chunk: Optional[ChunkCallback]
    ) -> None:
        """Regenerate from the full context if reflection extended it."""
        if state.failed or state.context == state.initial_context:
            if on_chunk is not None:
                on_chunk(state.current_answer)
            return

        streamed: list[str] = []

        def forward(token: str) -> None:
            streamed.append(token)
            if on_chunk is not None:
                on_chunk(token)

        try:
            final = await self._llm.complete(
                self._answer_messages(state),
                on_chunk=forward if on_chunk is not None else None,
            )
        except Exception as e:
            logger.error(f"Final answer generation failed: {e}")
            final = ""

        if final and final.strip():
            state.current_answer = final.strip()
            return

        # the consumer may hold partial text; resend the kept answer after it
        if on_chunk is not None:
            separator = "\n\n---\n\n" if "".join(streamed).strip() else ""
            on_chunk(separator + state.current_answer)

    def _format_answer(self, state: ReflectionState) -> str:
        parts = [state.current_answer]

        cited: list[tuple[int, SearchResult]] = []
        seen_documents: set[str] = set()
        for match in _CITATION_RE.finditer(state.current_answer):
            index = int(match.group(1))
            if not 1 <= index <= len(state.sources):
                continue
            source = state.sources[index - 1]
            if source.document.id in seen_documents:
                continue
            seen_documents.add(source.document.id)
            cited.append((index, source))

        if cited:
            lines = [f"[{i}] {s.document.name} ({s.document.path})" for i, s in cited]
            parts.append("---\n**Sources:**\n" + "\n".join(lines))
        else:
            top = sorted(
                unique_by_document(state.sources),
                key=lambda s: s.similarity,
                reverse=True,
            )[:3]
            lines = [f"- {s.document.name} ({s.document.path})" for s in top]
            parts.append("---\n**Based on:**\n" + "\n".join(lines))

        parts.append(f"_Reflection rounds: {state.round}_")
        return "\n\n".join(parts)
