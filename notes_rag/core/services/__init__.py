"""Core business services."""
from .embedding_cache import EmbeddingCache, MinIntervalLimiter
from .chunker import SemanticChunker
from .retriever import Retriever
from .query_optimizer import QueryOptimizer
from .hyde import HyDEGenerator
from .reranker import MMRReranker
from .answer_service import AnswerSynthesizer

__all__ = [
    "EmbeddingCache",
    "MinIntervalLimiter",
    "SemanticChunker",
    "Retriever",
    "QueryOptimizer",
    "HyDEGenerator",
    "MMRReranker",
    "AnswerSynthesizer",
]
