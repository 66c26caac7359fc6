"""Relevance scoring — turns raw vector similarity into a final ranking score.

Everything here is pure: no I/O, no mutation of inputs.  Two independent
algorithms live side by side:

* :func:`reranked_score` — fixed heuristic boosts (entity name in query,
  keyword overlap, code-vs-summary intent).
* :func:`entity_name_relevance_boost` — a finer-grained boost driven
  entirely by a :class:`~embedvault.boost_config.BoostConfiguration`.
"""

from __future__ import annotations

import dataclasses
import math
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from embedvault.boost_config import BoostConfiguration, PatternRule
    from embedvault.types import EmbeddingRecord, ScoredEmbedding

# ------------------------------------------------------------------
# Query vocabularies
# ------------------------------------------------------------------

ENTITY_NAME_BOOST = 0.15
KEYWORD_OVERLAP_WEIGHT = 0.1
CODE_EXPLANATION_BOOST = 0.2
CODE_SNIPPET_BASE_BOOST = 0.05
CODE_KEYWORD_BOOST = 0.08
SUMMARY_OVERVIEW_BOOST = 0.08

CODE_EXPLANATION_PHRASES = (
    "how does",
    "how is",
    "explain",
    "understand",
    "work",
    "implement",
    "integrate",
)
CODE_KEYWORDS = (
    "function",
    "class",
    "method",
    "variable",
    "interface",
    "type",
    "const",
    "let",
    "var",
)
OVERVIEW_KEYWORDS = ("overview", "summary", "architecture", "structure", "design")

_NON_WORD_RE = re.compile(r"[^\w]")
_TYPE_DECL_RE = re.compile(r"\b(?:class|struct|interface|enum|trait|type)\s+\w+")
_FUNC_DECL_RE = re.compile(r"\b(?:function|def|func|fn|method|proc)\s+\w+")
_MODIFIER_CALL_RE = re.compile(r"\b(?:public|private|protected|static|async|export)\s+\w+\s*\(")
_BODY_CALL_RE = re.compile(r"\b(?:async|public|private|protected|static)\s+\w+\s*\(")
_MEMBER_ACCESS_RE = re.compile(r"(?:\b(?:this|self)|@)\.\w+")
_CONTROL_EXIT_RE = re.compile(r"\b(?:return|yield|throw)\s+")

_LONG_CHUNK_CHARS = 800
_LONG_CHUNK_BOOST = 0.2
_METHOD_IMPLEMENTATION_CAP = 0.3
_IMPLEMENTATION_CONTENT_CAP = 0.2
_ENTITY_IN_BODY_BOOST = 0.1


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def tokenize_query(query_text: str, *, min_length: int = 0) -> set[str]:
    """Lower-cased whitespace tokens of *query_text* longer than *min_length*."""
    return {t for t in query_text.lower().split() if len(t) > min_length}


def classify_content(record: EmbeddingRecord) -> tuple[bool, bool]:
    """Return ``(is_summary, is_code_snippet)`` for *record*."""
    meta_type = record.metadata.type if record.metadata is not None else None
    is_summary = record.embedding_type == "summary" or meta_type == "file_summary"
    is_code_snippet = record.embedding_type == "chunk" and not is_summary
    return is_summary, is_code_snippet


# ------------------------------------------------------------------
# reranked_score
# ------------------------------------------------------------------


def entity_name_boost(record: EmbeddingRecord, query_text: str) -> float:
    if record.entity_name and record.entity_name.lower() in query_text.lower():
        return ENTITY_NAME_BOOST
    return 0.0


def keyword_overlap_boost(record: EmbeddingRecord, query_tokens: set[str]) -> float:
    if not query_tokens or not record.chunk_text:
        return 0.0
    chunk_tokens = set(record.chunk_text.lower().split())
    overlap = len(query_tokens & chunk_tokens)
    return overlap / len(query_tokens) * KEYWORD_OVERLAP_WEIGHT


def code_snippet_boost(is_code_snippet: bool, query_text: str) -> float:
    if not is_code_snippet:
        return 0.0
    query_lower = query_text.lower()
    explains = any(p in query_lower for p in CODE_EXPLANATION_PHRASES)
    boost = CODE_EXPLANATION_BOOST if explains else CODE_SNIPPET_BASE_BOOST
    if any(k in query_lower for k in CODE_KEYWORDS):
        boost += CODE_KEYWORD_BOOST
    return boost


def summary_boost(is_summary: bool, query_text: str) -> float:
    if not is_summary:
        return 0.0
    query_lower = query_text.lower()
    if any(k in query_lower for k in OVERVIEW_KEYWORDS):
        return SUMMARY_OVERVIEW_BOOST
    return 0.0


def reranked_score(
    candidate: ScoredEmbedding,
    query_text: str,
    query_tokens: set[str] | None = None,
) -> float:
    """Final relevance score for *candidate*, always within ``[0, 1]``.

    *query_tokens* defaults to the lower-cased whitespace tokens of
    *query_text*.
    """
    if query_tokens is None:
        query_tokens = tokenize_query(query_text)
    record = candidate.record
    is_summary, is_code_snippet = classify_content(record)

    score = candidate.similarity
    score += entity_name_boost(record, query_text)
    score += keyword_overlap_boost(record, query_tokens)
    score += code_snippet_boost(is_code_snippet, query_text)
    score += summary_boost(is_summary, query_text)
    return _clamp(score)


# ------------------------------------------------------------------
# entity_name_relevance_boost
# ------------------------------------------------------------------


def string_similarity(a: str, b: str) -> float:
    """Shared distinct characters over the longer length; 0 if either is empty."""
    if not a or not b:
        return 0.0
    return len(set(a) & set(b)) / max(len(a), len(b))


def query_terms(query_text: str) -> list[str]:
    """Whitespace terms longer than two characters, lower-cased, non-word characters removed."""
    terms = (_NON_WORD_RE.sub("", t.lower()) for t in query_text.split() if len(t) > 2)
    return [t for t in terms if t]


def _pattern_score(rules: Iterable[PatternRule], text: str) -> float:
    return sum(rule.boost for rule in rules if rule.matches(text))


def entity_name_relevance_boost(
    query_text: str,
    record: EmbeddingRecord,
    config: BoostConfiguration,
) -> float:
    """Configurable boost for *record* against *query_text*, capped at ``config.max_total_boost``."""
    boost = 0.0
    query_lower = query_text.lower()
    content_lower = (record.chunk_text or "").lower()
    terms = query_terms(query_text)
    entity_lower = record.entity_name.lower() if record.entity_name else ""

    if entity_lower:
        if any(t == entity_lower for t in terms):
            boost += config.entity_name_exact_match_boost
        if any(t in entity_lower or entity_lower in t for t in terms):
            boost += config.entity_name_partial_match_boost
        best = max((string_similarity(t, entity_lower) for t in terms), default=0.0)
        if best > config.entity_name_fuzzy_match_threshold:
            boost += config.entity_name_fuzzy_match_boost * best

    method_score = _pattern_score(config.method_implementation_patterns, content_lower)
    if entity_lower and any(t in entity_lower for t in terms):
        method_score *= config.implementation_boost_multiplier
    boost += min(_METHOD_IMPLEMENTATION_CAP, method_score)

    content_score = _pattern_score(config.implementation_content_patterns, content_lower)
    boost += min(_IMPLEMENTATION_CONTENT_CAP, content_score)

    if record.file_path_relative:
        path_lower = record.file_path_relative.lower()
        base = path_lower.rsplit("/", 1)[-1]
        stem = base.rsplit(".", 1)[0] if "." in base else base
        if any(t in stem for t in terms):
            boost += config.file_name_match_boost
        parts = path_lower.split("/")
        if any(t in part for t in terms for part in parts):
            boost += config.directory_match_boost

    if record.embedding_type == "chunk":
        length = len(record.chunk_text or "")
        if length > config.substantial_content_threshold:
            boost += config.substantial_content_boost
        if length > config.large_content_threshold:
            boost += config.large_content_boost
        if entity_lower and entity_lower in content_lower:
            boost += _ENTITY_IN_BODY_BOOST

    meta = record.metadata
    if meta is not None:
        if meta.language and meta.language.lower() in query_lower:
            boost += config.language_match_boost
        if meta.code_type and any(t in meta.code_type.lower() for t in terms):
            boost += config.code_type_match_boost
        if meta.is_implementation:
            boost += config.implementation_vs_declaration_boost

    return min(config.max_total_boost, boost)


# ------------------------------------------------------------------
# Implementation diversification
# ------------------------------------------------------------------


def is_constant_entity(name: str | None) -> bool:
    """ALL_CAPS_WITH_UNDERSCORES names and prompt constants are not implementations."""
    if not name or not name.strip():
        return False
    trimmed = name.strip()
    all_caps = trimmed == trimmed.upper()
    return (all_caps and "_" in trimmed) or "prompt" in trimmed.lower()


def _mentions(record: EmbeddingRecord, target: str) -> bool:
    entity = (record.entity_name or "").lower()
    content = (record.chunk_text or "").lower()
    return target in entity or target in content


def enforce_implementation_diversification(
    query_text: str,
    candidates: list[ScoredEmbedding],
    top_k: int,
    config: BoostConfiguration,
) -> list[ScoredEmbedding]:
    """Lift implementation chunks of the query's target entity when they are scarce.

    The target entity is the first query term longer than three characters
    (or the whole query).  Returns new candidates in the same order.
    """
    lowered_terms = query_text.lower().split()
    target = next((t for t in lowered_terms if len(t) > 3), query_text.lower())
    signature_rules = config.implementation_signature_patterns
    scores = [c.similarity for c in candidates]

    def looks_like_implementation(content: str) -> bool:
        return (
            any(rule.matches(content) for rule in signature_rules)
            or _TYPE_DECL_RE.search(content) is not None
            or _FUNC_DECL_RE.search(content) is not None
            or _MODIFIER_CALL_RE.search(content) is not None
        )

    implementation_idx = [
        i
        for i, c in enumerate(candidates)
        if not is_constant_entity(c.record.entity_name)
        and _mentions(c.record, target)
        and looks_like_implementation((c.record.chunk_text or "").lower())
    ]

    if len(implementation_idx) < math.floor(top_k * config.implementation_diversification_threshold):
        for i in implementation_idx:
            chunk_text = candidates[i].record.chunk_text or ""
            content = chunk_text.lower()
            for rule in signature_rules:
                if rule.matches(content):
                    scores[i] = min(1.0, scores[i] + rule.boost)
                    break
            if len(chunk_text) > _LONG_CHUNK_CHARS:
                scores[i] = min(1.0, scores[i] + _LONG_CHUNK_BOOST)

    has_signatures = any(
        rule.matches((c.record.chunk_text or "").lower())
        for rule in signature_rules
        for c in candidates
    )
    if not has_signatures:
        for i, c in enumerate(candidates):
            if is_constant_entity(c.record.entity_name) or not _mentions(c.record, target):
                continue
            content = (c.record.chunk_text or "").lower()
            if (
                _BODY_CALL_RE.search(content)
                or _MEMBER_ACCESS_RE.search(content)
                or _CONTROL_EXIT_RE.search(content)
                or _FUNC_DECL_RE.search(content)
            ):
                scores[i] = min(1.0, scores[i] + config.entity_boost_multiplier)

    return [
        c if scores[i] == c.similarity else dataclasses.replace(c, similarity=scores[i])
        for i, c in enumerate(candidates)
    ]


def rank_candidates(candidates: Iterable[ScoredEmbedding]) -> list[ScoredEmbedding]:
    """Sort by similarity, highest first; equal scores keep their input order."""
    return sorted(candidates, key=lambda c: c.similarity, reverse=True)
