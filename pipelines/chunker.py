"""Token-budgeted chunk splitting.

Oversized chunks are divided on paragraph boundaries first, then on
sentence boundaries, and finally into fixed-size character windows.
"""

import logging
import math
import re
from typing import List

from .models import Chunk

logger = logging.getLogger(__name__)

# Rough estimation: ~4 characters per token for English text
CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS = 1000
HARD_SLICE_SAFETY = 0.9

_SENTENCE_RE = re.compile(r'(.*?[.!?](?:\s|$))', re.DOTALL)


def estimate_tokens(text: str) -> int:
    """Estimate token count for text from its character length."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def split_by_sentences(text: str) -> List[str]:
    """Split text into trimmed sentences, keeping any unterminated tail."""
    parts = []
    last_index = 0
    for match in _SENTENCE_RE.finditer(text):
        parts.append(match.group(1))
        last_index = match.end()
    if last_index < len(text):
        parts.append(text[last_index:])
    return [p.strip() for p in parts if p.strip()]


def hard_slice_by_characters(text: str, max_tokens: int) -> List[str]:
    """Cut text into consecutive, non-overlapping windows within budget."""
    char_limit = int(max(CHARS_PER_TOKEN * max_tokens * HARD_SLICE_SAFETY, 1))
    return [text[i:i + char_limit] for i in range(0, len(text), char_limit)]


class _PartEmitter:
    """Collects child chunks and hands out ``_part_N`` ids in emission order."""

    def __init__(self, parent: Chunk):
        self.parent = parent
        self.children: List[Chunk] = []

    def emit(self, content: str) -> None:
        if not content.strip():
            return
        part_id = f"{self.parent.id}_part_{len(self.children)}"
        self.children.append(self.parent.with_content(part_id, content))


def split_chunk(chunk: Chunk, max_tokens: int = DEFAULT_MAX_TOKENS) -> List[Chunk]:
    """Split a chunk so that every piece fits within ``max_tokens``.

    Args:
        chunk: Chunk to split
        max_tokens: Token budget per resulting chunk

    Returns:
        ``[chunk]`` when it already fits, otherwise the ordered children.
        Children share the parent's page name and href.
    """
    if estimate_tokens(chunk.full_content) <= max_tokens:
        return [chunk]

    paragraphs = [p.strip() for p in chunk.full_content.split('\n\n') if p.strip()]
    emitter = _PartEmitter(chunk)
    buffer = ''

    for paragraph in paragraphs:
        if estimate_tokens(paragraph) > max_tokens:
            emitter.emit(buffer)
            buffer = ''
            _split_paragraph(paragraph, max_tokens, emitter)
            continue

        tentative = f"{buffer}\n\n{paragraph}" if buffer else paragraph
        if estimate_tokens(tentative) > max_tokens:
            emitter.emit(buffer)
            buffer = paragraph
        else:
            buffer = tentative

    emitter.emit(buffer)

    if not emitter.children:
        return [chunk]
    logger.debug(f"Split {chunk.id} into {len(emitter.children)} parts (max {max_tokens} tokens)")
    return emitter.children


def _split_paragraph(paragraph: str, max_tokens: int, emitter: _PartEmitter) -> None:
    sentence_buffer = ''
    for sentence in split_by_sentences(paragraph):
        tentative = f"{sentence_buffer} {sentence}" if sentence_buffer else sentence
        if estimate_tokens(tentative) <= max_tokens:
            sentence_buffer = tentative
            continue

        emitter.emit(sentence_buffer)
        sentence_buffer = ''
        if estimate_tokens(sentence) > max_tokens:
            for piece in hard_slice_by_characters(sentence, max_tokens):
                emitter.emit(piece)
        else:
            sentence_buffer = sentence

    emitter.emit(sentence_buffer)
