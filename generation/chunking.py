"""
Source-text preprocessing for long study material.

Long material (more than CHUNKING_THRESHOLD characters) is split into
sentence-bounded chunks, each chunk is scored for importance, and a
stratified front/middle/back sample is kept so the model sees the whole
document instead of only its beginning and end.
"""

import math
import re
from typing import List, Optional, Tuple

from generation.schemas import ChunkingInfo, TextChunk

CHUNKING_THRESHOLD = 5000     # characters; at or below this the text is used as-is
DEFAULT_CHUNK_SIZE = 1000     # characters per chunk (a sentence is never split)

SENTENCE = re.compile(r"[^.!?]+(?:[.!?]+|$)")
SENTENCE_END = re.compile(r"[.!?]+")

IMPORTANT_PATTERNS = [
    # Explicit importance markers
    re.compile(r"\b(?:중요|핵심|필수|주의|참고|예시|정의|원리|방법|특징|개념|원칙|규칙)\b"),
    re.compile(r"\b(?:important|key|essential|note|definition|principle|example)\b", re.I),
    # CamelCase technical terms, e.g. JavaScript
    re.compile(r"\b[A-Z][a-z]+(?:[A-Z][a-z]+)+"),
    # Enumerations: "1. " / "2) "
    re.compile(r"\d+[.)] "),
    # **emphasised** spans
    re.compile(r"\*\*[^*]+\*\*"),
]

EDGE_BONUS = 5


def split_into_chunks(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[TextChunk]:
    """
    Greedily pack sentences into chunks of at most chunk_size characters.

    A chunk may run over chunk_size rather than split a sentence.
    """
    sentences = [s for s in SENTENCE.findall(text) if s.strip()] or [text]

    parts: List[str] = []
    current = ""
    for sentence in sentences:
        if current and len(current) + len(sentence) > chunk_size:
            parts.append(current.strip())
            current = sentence
        else:
            current += sentence
    if current.strip():
        parts.append(current.strip())

    last = len(parts) - 1
    return [
        TextChunk(text=part, index=i, position=(i / last) if last > 0 else 1.0)
        for i, part in enumerate(parts)
    ]


def _count_keywords(text: str) -> int:
    return sum(len(pattern.findall(text)) for pattern in IMPORTANT_PATTERNS)


def _complexity(text: str) -> int:
    words = text.split()
    if not words:
        return 0
    avg_word_length = sum(len(w) for w in words) / len(words)
    sentence_count = len(SENTENCE_END.findall(text))
    return math.floor(avg_word_length * 0.5 + sentence_count * 0.3)


def calculate_importance(chunk: TextChunk, total_chunks: int) -> float:
    """
    Additive importance score, only meaningful relative to other chunks of the same run.

    keyword signals × 2  +  lead/conclusion bonus  +  complexity
    """
    score = _count_keywords(chunk.text) * 2

    position = chunk.index / total_chunks if total_chunks else 0.0
    if position < 0.1 or position > 0.9:
        score += EDGE_BONUS

    score += _complexity(chunk.text)
    return float(score)


def _top_by_importance(chunks: List[TextChunk], count: int) -> List[TextChunk]:
    return sorted(chunks, key=lambda c: c.importance, reverse=True)[:count]


def stratified_sample(chunks: List[TextChunk], count: int) -> List[TextChunk]:
    """
    Pick `count` chunks spread across the front, middle and back thirds.

    Slots are split evenly across the thirds (remainder to front, then middle);
    slots a short third cannot fill move to the next third that still has chunks.
    Within a third, the most important chunks win.
    """
    if len(chunks) <= count:
        return chunks

    third = len(chunks) // 3
    sections = [chunks[:third], chunks[third:third * 2], chunks[third * 2:]]

    quotas = [count // 3 + (1 if i < count % 3 else 0) for i in range(3)]
    for i in range(3):
        spare = quotas[i] - len(sections[i])
        if spare > 0:
            quotas[i] = len(sections[i])
            for j in sorted(range(3), key=lambda k: (k <= i, k)):
                room = len(sections[j]) - quotas[j]
                if room > 0 and spare > 0:
                    moved = min(room, spare)
                    quotas[j] += moved
                    spare -= moved

    selected: List[TextChunk] = []
    for section, quota in zip(sections, quotas):
        selected.extend(_top_by_importance(section, quota))
    return selected[:count]


def get_chunking_stats(
    original_text: str,
    processed_text: str,
    total_chunks: int,
    selected_chunks: int,
) -> ChunkingInfo:
    original_length = len(original_text)
    reduction = round((1 - len(processed_text) / original_length) * 100) if original_length else 0
    return ChunkingInfo(
        applied=True,
        original_length=original_length,
        processed_length=len(processed_text),
        reduction_rate=reduction,
        total_chunks=total_chunks,
        selected_chunks=selected_chunks,
    )


def preprocess_source(
    text: Optional[str],
    problem_count: int,
    threshold: int = CHUNKING_THRESHOLD,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Tuple[Optional[str], ChunkingInfo]:
    """
    Shrink long material to a representative subset.

    Returns (working_text, stats). Text at or below the threshold comes back unchanged.
    Selected chunks are re-sorted by their original order before joining.
    """
    if not text or len(text) <= threshold:
        return text, ChunkingInfo(applied=False)

    chunks = split_into_chunks(text, chunk_size)
    for chunk in chunks:
        chunk.importance = calculate_importance(chunk, len(chunks))

    selected = stratified_sample(chunks, min(problem_count * 2, len(chunks)))
    processed = "\n\n".join(c.text for c in sorted(selected, key=lambda c: c.index))
    return processed, get_chunking_stats(text, processed, len(chunks), len(selected))
