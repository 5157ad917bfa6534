"""
Streaming chunker.

Emits chunks from an iterable of text (or bytes) pieces while holding at most
one window in memory. Windows, overlap and section labels match chunk() with
the same strategy; total_chunks is unknown and left as None.
"""
from __future__ import annotations
from dataclasses import replace
from typing import Iterable, Iterator, List, Optional, Union
import codecs
import logging

from legacy_modernizer.chunking.boundaries import find_boundaries, label_at
from legacy_modernizer.chunking.chunker import (
    Chunk,
    ChunkOptions,
    _make_chunk,
    determine_strategy,
    line_windows,
    size_window,
)

logger = logging.getLogger(__name__)


def _decoded(pieces: Iterable[Union[str, bytes]]) -> Iterator[str]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    for piece in pieces:
        if isinstance(piece, bytes):
            text = decoder.decode(piece)
            if text:
                yield text
        else:
            yield piece
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


def _single(text: str, file_name: str) -> Chunk:
    single = _make_chunk(0, text, 1, text.count("\n") + 1, 0, file_name, "single")
    return replace(single, total_chunks=1, is_last=True)


def chunk_stream(
    pieces: Iterable[Union[str, bytes]],
    file_name: str = "unknown",
    options: Optional[ChunkOptions] = None,
    size_hint: Optional[int] = None,
) -> Iterator[Chunk]:
    """
    Chunk a stream incrementally.

    Args:
        pieces: Text or UTF-8 byte pieces, e.g. an open file
        file_name: Label copied onto each chunk and used for strategy selection
        options: Limits and strategy
        size_hint: Expected total size, used only to resolve the "auto" strategy

    Returns:
        Iterator of chunks in order; the final one has is_last=True

    Raises:
        ChunkingConfigError: immediately, if the options cannot produce a terminating window
    """
    options = options or ChunkOptions()
    options.validate()

    strategy = options.strategy
    if strategy == "auto":
        strategy = determine_strategy(file_name, size_hint or 0, options)
    logger.debug(f"Streaming {file_name} with strategy {strategy}")

    texts = _decoded(pieces)
    if strategy == "size":
        return _stream_by_size(texts, file_name, options)
    return _stream_by_lines(texts, file_name, options, logical=strategy == "logical")


def _stream_by_lines(texts: Iterator[str], file_name: str, options: ChunkOptions, logical: bool) -> Iterator[Chunk]:
    strategy = "logical" if logical else "lines"
    buffer: List[str] = []   # complete lines not yet behind the cursor
    base_line = 0            # 0-based line number of buffer[0]
    base_offset = 0          # character offset of buffer[0]
    carry = ""               # trailing partial line
    carried_label: Optional[str] = None  # section open at buffer[0]
    index = 0

    for piece in texts:
        carry += piece
        parts = carry.split("\n")
        carry = parts.pop()
        buffer.extend(parts)

        # More complete lines than one window means this window is not the last
        while len(buffer) > options.max_lines_per_chunk:
            window = buffer[: options.max_lines_per_chunk + 1]
            bounds = find_boundaries(window) if logical else None
            start, end = line_windows(window, options, boundaries=bounds)[0]
            label = (label_at(window, bounds, start) or carried_label) if logical else None
            yield _make_chunk(
                index=index,
                content="\n".join(buffer[start:end]),
                start_line=base_line + 1,
                end_line=base_line + end,
                offset=base_offset,
                file_name=file_name,
                strategy=strategy,
                section_label=label,
            )
            index += 1

            advance = end - options.overlap_lines
            if advance <= 0:
                advance = end
            if logical:
                carried_label = label_at(window, bounds, advance - 1) or carried_label
            base_offset += sum(len(line) + 1 for line in buffer[:advance])
            base_line += advance
            del buffer[:advance]

    remaining = buffer + [carry]
    text = "\n".join(remaining)
    if index == 0 and len(remaining) <= options.max_lines_per_chunk and len(text) <= options.max_chars_per_chunk:
        yield _single(text, file_name)
        return

    bounds = find_boundaries(remaining) if logical else None
    windows = line_windows(remaining, options, boundaries=bounds)
    offsets = []
    pos = base_offset
    for line in remaining:
        offsets.append(pos)
        pos += len(line) + 1

    for n, (start, end) in enumerate(windows):
        label = (label_at(remaining, bounds, start) or carried_label) if logical else None
        c = _make_chunk(
            index=index,
            content="\n".join(remaining[start:end]),
            start_line=base_line + start + 1,
            end_line=base_line + end,
            offset=offsets[start],
            file_name=file_name,
            strategy=strategy,
            section_label=label,
        )
        if n == len(windows) - 1:
            c = replace(c, is_last=True)
        yield c
        index += 1

    logger.info(f"Streamed {file_name}: {index} chunks, {base_line + len(remaining)} lines")


def _stream_by_size(texts: Iterator[str], file_name: str, options: ChunkOptions) -> Iterator[Chunk]:
    max_chars = options.max_chars_per_chunk
    overlap = options.effective_overlap_chars
    buf = ""          # text from the current window start
    base_line = 0     # newlines before buf
    base_offset = 0   # character offset of buf
    index = 0

    for piece in texts:
        buf += piece
        while len(buf) > max_chars:
            end, next_start = size_window(buf, 0, max_chars, overlap)
            yield _make_chunk(
                index=index,
                content=buf[:end],
                start_line=base_line + 1,
                end_line=base_line + buf.count("\n", 0, max(0, end - 1)) + 1,
                offset=base_offset,
                file_name=file_name,
                strategy="size",
            )
            index += 1
            base_line += buf.count("\n", 0, next_start)
            base_offset += next_start
            buf = buf[next_start:]

    if index == 0 and buf.count("\n") < options.max_lines_per_chunk:
        yield _single(buf, file_name)
        return

    last = _make_chunk(
        index=index,
        content=buf,
        start_line=base_line + 1,
        end_line=base_line + buf.count("\n", 0, max(0, len(buf) - 1)) + 1,
        offset=base_offset,
        file_name=file_name,
        strategy="size",
    )
    yield replace(last, is_last=True)
    logger.info(f"Streamed {file_name}: {index + 1} chunks, {base_offset + len(buf)} chars")
