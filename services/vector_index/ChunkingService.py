"""Splits long text into overlapping, sentence-respecting chunks.

Chunk order is significant: the position of a chunk in the returned list is
its chunk index, which is part of the vector point id.
"""

import re

SENTENCE_END = re.compile(r"([.!?]+\s+)")


class ChunkingService:

    @staticmethod
    def _validate(size: int, overlap: int) -> None:
        if size <= 0:
            raise ValueError("chunk size must be positive")
        if overlap < 0 or overlap >= size:
            raise ValueError("chunk overlap must be between 0 and chunk size")

    def chunk(self, text: str, size: int = 1000, overlap: int = 200) -> list[str]:
        """Split ``text`` into chunks of at most ``size`` characters.

        Sentences are packed greedily; every new chunk is seeded with the
        trailing sentences of the previous one, up to ``overlap`` characters.
        Text without sentence boundaries falls back to a fixed sliding window.

        Args:
            text (str): The text to split.
            size (int): Target chunk size in characters.
            overlap (int): Maximum overlap between consecutive chunks.

        Returns:
            list[str]: The chunks, in text order. Empty for empty text.
        """
        self._validate(size, overlap)
        if not text or not text.strip():
            return []
        if len(text) <= size:
            return [text]

        chunks = self._smart_chunk(text, size, overlap)
        if not chunks:
            chunks = self.simple_chunk(text, size, overlap)
        return chunks

    def _smart_chunk(self, text: str, size: int, overlap: int) -> list[str]:
        sentences = self.split_sentences(text)
        if not sentences:
            return []

        chunks: list[str] = []
        current: list[str] = []
        current_len = 0

        def joined_len(parts: list[str]) -> int:
            return sum(len(p) for p in parts) + max(len(parts) - 1, 0)

        for sentence in sentences:
            if len(sentence) > size:
                # oversized sentence: flush what we have, then window it on its own
                if current:
                    chunks.append(" ".join(current))
                chunks.extend(self.simple_chunk(sentence, size, overlap))
                current, current_len = [], 0
                continue

            if current and current_len + 1 + len(sentence) > size:
                chunks.append(" ".join(current))
                seed = self._overlap_tail(current, overlap)
                while seed and joined_len(seed + [sentence]) > size:
                    seed.pop(0)
                current = seed + [sentence]
                current_len = joined_len(current)
            else:
                current.append(sentence)
                current_len = joined_len(current)

        if current:
            chunks.append(" ".join(current))
        return [c.strip() for c in chunks if c.strip()]

    @staticmethod
    def _overlap_tail(sentences: list[str], overlap: int) -> list[str]:
        """Trailing sentences whose joined length stays within ``overlap``."""
        tail: list[str] = []
        length = 0
        for sentence in reversed(sentences):
            added = len(sentence) + (1 if tail else 0)
            if length + added > overlap:
                break
            tail.insert(0, sentence)
            length += added
        return tail

    def simple_chunk(self, text: str, size: int, overlap: int) -> list[str]:
        """Fixed window of ``size`` characters advancing by ``size - overlap``.

        Dropping the first ``overlap`` characters of every chunk but the first
        and concatenating the rest gives back the original text.
        """
        self._validate(size, overlap)
        chunks = []
        step = size - overlap
        position = 0
        while position < len(text):
            chunks.append(text[position:position + size])
            if position + size >= len(text):
                break
            position += step
        return chunks

    @staticmethod
    def split_sentences(text: str) -> list[str]:
        """Split on punctuation followed by whitespace, keeping the punctuation."""
        parts = SENTENCE_END.split(text)
        sentences = []
        current = ""
        for part in parts:
            current += part
            if SENTENCE_END.fullmatch(part):
                sentences.append(current.strip())
                current = ""
        if current.strip():
            sentences.append(current.strip())
        return [s for s in sentences if s]

    @staticmethod
    def chunk_by_separator(text: str, separator: str, max_size: int) -> list[str]:
        chunks = []
        current = ""
        for part in text.split(separator):
            if current and len(current) + len(part) + len(separator) > max_size:
                chunks.append(current.strip())
                current = part
            else:
                current = f"{current}{separator}{part}" if current else part
        if current.strip():
            chunks.append(current.strip())
        return [c for c in chunks if c]

    @staticmethod
    def chunk_stats(chunks: list[str]) -> dict:
        sizes = [len(c) for c in chunks]
        return {
            "count": len(chunks),
            "total_size": sum(sizes),
            "avg_size": int(sum(sizes) / len(sizes)) if sizes else 0,
            "min_size": min(sizes, default=0),
            "max_size": max(sizes, default=0),
        }
