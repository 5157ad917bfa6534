"""
Source Chunker

Splits oversized legacy source files into overlapping windows that fit a
single generation call. Chunking is a pure function of (content, file name,
options): calling it twice on the same input gives the same chunks.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Literal, Optional, Tuple
import logging

from legacy_modernizer.chunking.boundaries import find_boundaries, label_at
from legacy_modernizer.errors import ChunkingConfigError

logger = logging.getLogger(__name__)

ChunkStrategy = Literal["auto", "size", "lines", "logical"]

# Defaults sized for one prompt of a typical completion model
MAX_LINES_PER_CHUNK = 200
MAX_CHARS_PER_CHUNK = 8000
OVERLAP_LINES = 10
MIN_CHUNK_SIZE = 50

# Rough line width used to turn a line overlap into a character overlap
CHARS_PER_OVERLAP_LINE = 40

# Formats with recognisable section structure
STRUCTURED_EXTENSIONS = {".cbl", ".cob", ".cobol", ".cpy", ".rpg", ".rpgle", ".sqlrpgle", ".clle", ".json"}
# Record-oriented formats where any line is a safe break
DATA_EXTENSIONS = {".dat", ".csv", ".txt", ".log"}


@dataclass(frozen=True)
class ChunkOptions:
    """Limits for one chunking call."""
    max_lines_per_chunk: int = MAX_LINES_PER_CHUNK
    max_chars_per_chunk: int = MAX_CHARS_PER_CHUNK
    overlap_lines: int = OVERLAP_LINES
    min_chunk_size: int = MIN_CHUNK_SIZE
    strategy: ChunkStrategy = "auto"
    overlap_chars: Optional[int] = None  # size strategy only; derived from overlap_lines if unset

    @property
    def effective_overlap_chars(self) -> int:
        if self.overlap_chars is not None:
            return self.overlap_chars
        return min(self.overlap_lines * CHARS_PER_OVERLAP_LINE, self.max_chars_per_chunk // 4)

    def validate(self) -> None:
        """Raise ChunkingConfigError for limits that cannot chunk."""
        if self.max_lines_per_chunk <= 0:
            raise ChunkingConfigError(f"max_lines_per_chunk must be positive, got {self.max_lines_per_chunk}")
        if self.max_chars_per_chunk <= 0:
            raise ChunkingConfigError(f"max_chars_per_chunk must be positive, got {self.max_chars_per_chunk}")
        if self.overlap_lines < 0:
            raise ChunkingConfigError(f"overlap_lines must be >= 0, got {self.overlap_lines}")
        if self.overlap_lines >= self.max_lines_per_chunk:
            raise ChunkingConfigError(
                f"overlap_lines ({self.overlap_lines}) must be smaller than "
                f"max_lines_per_chunk ({self.max_lines_per_chunk})"
            )
        if self.min_chunk_size < 1 or self.min_chunk_size > self.max_lines_per_chunk:
            raise ChunkingConfigError(
                f"min_chunk_size must be between 1 and max_lines_per_chunk, got {self.min_chunk_size}"
            )
        if self.overlap_chars is not None and not 0 <= self.overlap_chars < self.max_chars_per_chunk:
            raise ChunkingConfigError(
                f"overlap_chars must be in [0, max_chars_per_chunk), got {self.overlap_chars}"
            )
        if self.strategy not in ("auto", "size", "lines", "logical"):
            raise ChunkingConfigError(f"Unknown chunk strategy: {self.strategy}")


@dataclass(frozen=True)
class Chunk:
    """A bounded, overlap-linked slice of a source file."""
    index: int
    total_chunks: Optional[int]      # None for streamed chunks
    start_line: int                  # 1-based, inclusive
    end_line: int                    # 1-based, inclusive
    content: str
    byte_length: int                 # UTF-8 encoded size of content
    is_first: bool
    is_last: bool
    section_label: Optional[str] = None
    file_name: str = "unknown"
    strategy: str = "lines"
    offset: int = 0                  # character offset of content in the source

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def to_dict(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "total_chunks": self.total_chunks,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "byte_length": self.byte_length,
            "char_length": len(self.content),
            "is_first": self.is_first,
            "is_last": self.is_last,
            "section_label": self.section_label,
            "file_name": self.file_name,
            "strategy": self.strategy,
        }


def _make_chunk(
    index: int,
    content: str,
    start_line: int,
    end_line: int,
    offset: int,
    file_name: str,
    strategy: str,
    section_label: Optional[str] = None,
) -> Chunk:
    return Chunk(
        index=index,
        total_chunks=None,
        start_line=start_line,
        end_line=end_line,
        content=content,
        byte_length=len(content.encode("utf-8")),
        is_first=index == 0,
        is_last=False,
        section_label=section_label,
        file_name=file_name,
        strategy=strategy,
        offset=offset,
    )


def determine_strategy(file_name: str, char_count: int, options: ChunkOptions) -> str:
    """Pick a strategy from the file extension and size."""
    ext = Path(file_name).suffix.lower()
    if ext in STRUCTURED_EXTENSIONS:
        return "logical"
    if ext in DATA_EXTENSIONS:
        return "lines"
    # Under the character budget, only the line limit can be exceeded
    if char_count <= options.max_chars_per_chunk:
        return "lines"
    return "size"


def _line_offsets(lines: List[str]) -> List[int]:
    offsets = []
    pos = 0
    for line in lines:
        offsets.append(pos)
        pos += len(line) + 1
    return offsets


def line_windows(
    lines: List[str],
    options: ChunkOptions,
    boundaries: Optional[List[int]] = None,
) -> List[Tuple[int, int]]:
    """
    Compute [start, end) line windows.

    Takes up to max_lines_per_chunk lines, pulls the end back to the last
    section boundary when boundaries are given, then shrinks from the end
    while the text is over max_chars_per_chunk (never below min_chunk_size
    lines). The next window starts overlap_lines before the previous end.
    """
    total = len(lines)
    windows: List[Tuple[int, int]] = []
    start = 0

    while start < total:
        end = min(start + options.max_lines_per_chunk, total)

        if boundaries and end < total:
            candidates = [b for b in boundaries if start + options.min_chunk_size <= b < end]
            if candidates:
                end = candidates[-1]

        size = sum(len(line) + 1 for line in lines[start:end]) - 1
        while size > options.max_chars_per_chunk and end - start > options.min_chunk_size:
            end -= 1
            size -= len(lines[end]) + 1

        windows.append((start, end))
        if end >= total:
            break

        next_start = end - options.overlap_lines
        if next_start <= start:
            # Overlap would stall the cursor
            next_start = end
        start = next_start

    return windows


def chunk_by_lines(content: str, file_name: str, options: ChunkOptions) -> List[Chunk]:
    """Line windows sized to stay under the character budget."""
    lines = content.split("\n")
    offsets = _line_offsets(lines)
    chunks = []
    for start, end in line_windows(lines, options):
        chunks.append(_make_chunk(
            index=len(chunks),
            content="\n".join(lines[start:end]),
            start_line=start + 1,
            end_line=end,
            offset=offsets[start],
            file_name=file_name,
            strategy="lines",
        ))
    return chunks


def chunk_by_logical_structure(content: str, file_name: str, options: ChunkOptions) -> List[Chunk]:
    """
    Line windows that prefer to end on a section boundary.

    Each chunk is labelled with the nearest section header at or
    before its first line.
    """
    lines = content.split("\n")
    offsets = _line_offsets(lines)
    boundaries = find_boundaries(lines)
    chunks = []
    for start, end in line_windows(lines, options, boundaries=boundaries):
        chunks.append(_make_chunk(
            index=len(chunks),
            content="\n".join(lines[start:end]),
            start_line=start + 1,
            end_line=end,
            offset=offsets[start],
            file_name=file_name,
            strategy="logical",
            section_label=label_at(lines, boundaries, start),
        ))
    logger.debug(f"{file_name}: {len(boundaries)} section boundaries found")
    return chunks


def size_window(text: str, start: int, max_chars: int, overlap: int) -> Tuple[int, Optional[int]]:
    """
    One character window of ``text`` beginning at ``start``.

    Returns (end, next_start); next_start is None when the window reaches
    the end of the text. The window ends after a newline when one exists
    inside it, and the next window starts at a line start inside the overlap.
    """
    n = len(text)
    end = min(start + max_chars, n)
    if end < n:
        cut = text.rfind("\n", start, end)
        if cut > start:
            end = cut + 1
    if end >= n:
        return end, None

    next_start = max(end - overlap, start)
    newline = text.find("\n", next_start, end)
    if newline != -1 and newline + 1 < end:
        next_start = newline + 1
    if next_start <= start:
        next_start = end
    return end, next_start


def chunk_by_size(content: str, file_name: str, options: ChunkOptions) -> List[Chunk]:
    """Character windows of max_chars_per_chunk, cut on line ends where possible."""
    max_chars = options.max_chars_per_chunk
    overlap = options.effective_overlap_chars
    chunks = []
    start: Optional[int] = 0

    while start is not None:
        end, next_start = size_window(content, start, max_chars, overlap)
        chunks.append(_make_chunk(
            index=len(chunks),
            content=content[start:end],
            start_line=content.count("\n", 0, start) + 1,
            end_line=content.count("\n", 0, max(start, end - 1)) + 1,
            offset=start,
            file_name=file_name,
            strategy="size",
        ))
        start = next_start

    return chunks


def _finalize(chunks: List[Chunk]) -> List[Chunk]:
    """Stamp total_chunks and mark only the final chunk as last."""
    total = len(chunks)
    return [replace(c, total_chunks=total, is_last=(c.index == total - 1)) for c in chunks]


def chunk(content: str, file_name: str = "unknown", options: Optional[ChunkOptions] = None) -> List[Chunk]:
    """
    Chunk source content.

    Args:
        content: Full file content
        file_name: Name used for strategy selection and chunk labels
        options: Limits and strategy; defaults to ChunkOptions()

    Returns:
        Non-empty list of chunks ordered by index

    Raises:
        ChunkingConfigError: if the options cannot produce a terminating window
    """
    options = options or ChunkOptions()
    options.validate()

    lines = content.split("\n")
    if len(lines) <= options.max_lines_per_chunk and len(content) <= options.max_chars_per_chunk:
        single = _make_chunk(
            index=0,
            content=content,
            start_line=1,
            end_line=len(lines),
            offset=0,
            file_name=file_name,
            strategy="single",
        )
        return _finalize([single])

    strategy = options.strategy
    if strategy == "auto":
        strategy = determine_strategy(file_name, len(content), options)

    if strategy == "logical":
        chunks = chunk_by_logical_structure(content, file_name, options)
    elif strategy == "lines":
        chunks = chunk_by_lines(content, file_name, options)
    elif strategy == "size":
        chunks = chunk_by_size(content, file_name, options)
    else:
        raise ChunkingConfigError(f"Unknown chunk strategy: {strategy}")

    chunks = _finalize(chunks)
    logger.info(
        f"Chunked {file_name}: {len(lines)} lines, {len(content)} chars -> "
        f"{len(chunks)} chunks (strategy: {strategy})"
    )
    return chunks


def chunk_file(path: str, options: Optional[ChunkOptions] = None) -> List[Chunk]:
    """Read a file as UTF-8 (replacing undecodable bytes) and chunk it."""
    p = Path(path)
    content = p.read_text(encoding="utf-8", errors="replace")
    return chunk(content, p.name, options)


def reassemble(chunks: List[Chunk]) -> str:
    """
    Rebuild the source from chunks by dropping overlapping regions.

    Line-based chunks are stitched on line numbers, size chunks on
    character offsets.
    """
    if not chunks:
        return ""
    ordered = sorted(chunks, key=lambda c: c.index)

    if all(c.strategy == "size" for c in ordered):
        text = ordered[0].content
        covered = ordered[0].offset + len(ordered[0].content)
        for c in ordered[1:]:
            text += c.content[covered - c.offset:]
            covered = c.offset + len(c.content)
        return text

    lines = ordered[0].content.split("\n")
    last_line = ordered[0].end_line
    for c in ordered[1:]:
        skip = last_line - c.start_line + 1
        lines.extend(c.content.split("\n")[skip:])
        last_line = c.end_line
    return "\n".join(lines)


def chunk_stats(chunks: List[Chunk]) -> Dict[str, object]:
    """Totals and size distribution for a chunking result."""
    if not chunks:
        return {"total_chunks": 0}
    sizes = [len(c.content) for c in chunks]
    line_counts = [c.line_count for c in chunks]
    return {
        "total_chunks": len(chunks),
        "total_chars": sum(sizes),
        "total_lines": sum(line_counts),
        "avg_chars_per_chunk": round(sum(sizes) / len(sizes)),
        "avg_lines_per_chunk": round(sum(line_counts) / len(line_counts)),
        "largest_chunk": max(sizes),
        "smallest_chunk": min(sizes),
        "size_distribution": {
            "small": sum(1 for s in sizes if s < 1000),
            "medium": sum(1 for s in sizes if 1000 <= s < 3000),
            "large": sum(1 for s in sizes if s >= 3000),
        },
    }
