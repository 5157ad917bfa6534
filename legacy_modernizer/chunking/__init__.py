"""
Chunking

Deterministic splitting of oversized source files into overlapping
windows, in batch or streaming form.
"""
from legacy_modernizer.chunking.chunker import (
    chunk,
    chunk_file,
    chunk_stats,
    determine_strategy,
    reassemble,
    Chunk,
    ChunkOptions,
    ChunkStrategy,
)
from legacy_modernizer.chunking.stream import chunk_stream

__all__ = [
    "chunk",
    "chunk_file",
    "chunk_stats",
    "chunk_stream",
    "determine_strategy",
    "reassemble",
    "Chunk",
    "ChunkOptions",
    "ChunkStrategy",
]
