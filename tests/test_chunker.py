import math

import pytest

from legacy_modernizer.chunking import chunk, chunk_file, chunk_stats, chunk_stream, determine_strategy, reassemble
from legacy_modernizer.chunking.boundaries import find_boundaries, section_name
from legacy_modernizer.chunking.chunker import ChunkOptions
from legacy_modernizer.errors import ChunkingConfigError, ConfigError


def numbered(n):
    return "\n".join(f"line {i}" for i in range(1, n + 1))


def test_500_line_file_gives_three_overlapping_chunks():
    content = numbered(500)
    chunks = chunk(content, "PAYROLL.txt", ChunkOptions(max_lines_per_chunk=200, overlap_lines=10))

    assert len(chunks) == 3
    assert (chunks[0].start_line, chunks[0].end_line) == (1, 200)
    assert [c.start_line for c in chunks] == [1, 191, 381]
    assert chunks[-1].end_line == 500
    assert all(c.total_chunks == 3 for c in chunks)
    assert [c.index for c in chunks] == [0, 1, 2]
    assert [c.is_last for c in chunks] == [False, False, True]
    assert chunks[0].is_first and not chunks[1].is_first
    # consecutive chunks share exactly overlap_lines lines
    assert chunks[0].content.split("\n")[-10:] == chunks[1].content.split("\n")[:10]


def test_reassemble_reconstructs_original():
    content = numbered(777)
    chunks = chunk(content, "data.txt", ChunkOptions(max_lines_per_chunk=120, overlap_lines=7, min_chunk_size=10))
    assert reassemble(chunks) == content


def test_single_chunk_when_within_limits():
    content = numbered(200)
    chunks = chunk(content, "small.cbl")
    assert len(chunks) == 1
    c = chunks[0]
    assert c.strategy == "single"
    assert c.is_first and c.is_last
    assert c.content == content
    assert (c.start_line, c.end_line) == (1, 200)


def test_empty_content_gives_one_empty_chunk():
    chunks = chunk("", "empty.cbl")
    assert len(chunks) == 1
    assert chunks[0].content == ""
    assert chunks[0].is_last
    assert chunks[0].byte_length == 0


def test_byte_length_counts_utf8():
    chunks = chunk("café", "x.txt")
    assert chunks[0].byte_length == 5


def test_overlap_not_smaller_than_window_is_rejected():
    with pytest.raises(ChunkingConfigError):
        chunk(numbered(10), "x.txt", ChunkOptions(max_lines_per_chunk=10, overlap_lines=10))
    with pytest.raises(ChunkingConfigError):
        chunk(numbered(10), "x.txt", ChunkOptions(max_lines_per_chunk=10, overlap_lines=25, min_chunk_size=5))


def test_invalid_limits_are_config_errors():
    for options in (
        ChunkOptions(max_lines_per_chunk=0),
        ChunkOptions(max_chars_per_chunk=-1),
        ChunkOptions(overlap_lines=-1),
        ChunkOptions(min_chunk_size=0),
        ChunkOptions(strategy="paragraphs"),
    ):
        with pytest.raises(ConfigError):
            options.validate()


def test_termination_bound_with_tight_limits():
    content = numbered(100)
    options = ChunkOptions(max_lines_per_chunk=10, overlap_lines=9, min_chunk_size=1)
    chunks = chunk(content, "x.txt", options)
    assert len(chunks) <= math.ceil(100 / (10 - 9)) + 1
    assert chunks[-1].end_line == 100
    assert reassemble(chunks) == content


def test_char_limit_shrinks_window():
    content = "\n".join("x" * 99 for _ in range(300))
    options = ChunkOptions(max_lines_per_chunk=200, max_chars_per_chunk=5000, overlap_lines=5, min_chunk_size=10)
    chunks = chunk(content, "wide.txt", options)
    assert all(len(c.content) <= 5000 for c in chunks)
    assert chunks[0].line_count == 50
    assert reassemble(chunks) == content


def test_min_chunk_size_allows_over_length_chunk():
    content = "\n".join("y" * 500 for _ in range(30))
    options = ChunkOptions(max_lines_per_chunk=20, max_chars_per_chunk=1000, overlap_lines=2, min_chunk_size=5)
    chunks = chunk(content, "wide.txt", options)
    assert all(c.line_count >= 5 for c in chunks[:-1])
    assert len(chunks[0].content) > 1000
    assert reassemble(chunks) == content


def test_strategy_selection_by_extension_and_size():
    options = ChunkOptions()
    assert determine_strategy("PAYROLL.CBL", 100, options) == "logical"
    assert determine_strategy("orders.rpgle", 100, options) == "logical"
    assert determine_strategy("dump.csv", 100000, options) == "lines"
    assert determine_strategy("notes", 100, options) == "lines"
    assert determine_strategy("blob", 100000, options) == "size"


def test_cobol_boundaries_and_labels():
    assert section_name("       IDENTIFICATION DIVISION.") == "IDENTIFICATION DIVISION"
    assert section_name("000100 PROCEDURE DIVISION.") == "PROCEDURE DIVISION"
    assert section_name("       WORKING-STORAGE SECTION.") == "WORKING-STORAGE SECTION"
    assert section_name("      * PROCEDURE DIVISION.") is None
    assert section_name("           MOVE A TO B.") is None
    assert section_name("     DCL-PROC calcTax;") == "CALCTAX"


def test_logical_chunks_end_on_section_boundary():
    lines = ["       IDENTIFICATION DIVISION."]
    lines += ["           DISPLAY 'HELLO'." for _ in range(149)]
    lines += ["       PROCEDURE DIVISION."]
    lines += ["           MOVE A TO B." for _ in range(99)]
    content = "\n".join(lines)

    chunks = chunk(content, "HELLO.cbl")
    assert chunks[0].strategy == "logical"
    assert chunks[0].end_line == 150
    assert chunks[0].section_label == "IDENTIFICATION DIVISION"
    assert find_boundaries(lines) == [0, 150]
    assert reassemble(chunks) == content


def test_size_strategy_respects_char_budget():
    content = "\n".join(("abc" * 20) + str(i) for i in range(300))
    chunks = chunk(content, "blob")
    assert chunks[0].strategy == "size"
    assert len(chunks) > 1
    assert all(len(c.content) <= 8000 for c in chunks)
    assert reassemble(chunks) == content


def test_chunking_is_deterministic():
    content = numbered(450)
    assert chunk(content, "a.txt") == chunk(content, "a.txt")


def test_stream_matches_batch_line_windows():
    content = numbered(500)
    options = ChunkOptions(strategy="lines")
    pieces = [content[i:i + 37] for i in range(0, len(content), 37)]

    streamed = list(chunk_stream(pieces, "PAYROLL.txt", options))
    batch = chunk(content, "PAYROLL.txt", options)

    assert [(c.start_line, c.end_line, c.content) for c in streamed] == \
        [(c.start_line, c.end_line, c.content) for c in batch]
    assert all(c.total_chunks is None for c in streamed)
    assert [c.is_last for c in streamed] == [False, False, True]
    assert reassemble(streamed) == content


def test_stream_decodes_split_utf8_bytes():
    data = "é\n".encode("utf-8") * 3
    pieces = [data[i:i + 1] for i in range(len(data))]
    chunks = list(chunk_stream(pieces, "x.txt"))
    assert len(chunks) == 1
    assert chunks[0].content == "é\né\né\n"
    assert chunks[0].is_last


def cobol_source():
    lines = ["       IDENTIFICATION DIVISION."]
    lines += ["           DISPLAY 'HELLO'." for _ in range(149)]
    lines += ["       PROCEDURE DIVISION."]
    lines += ["           MOVE A TO B." for _ in range(99)]
    return "\n".join(lines)


def test_stream_follows_logical_strategy_for_structured_files():
    content = cobol_source()
    pieces = [content[i:i + 64] for i in range(0, len(content), 64)]

    streamed = list(chunk_stream(pieces, "HELLO.cbl"))
    batch = chunk(content, "HELLO.cbl")

    summary = [(c.start_line, c.end_line, c.section_label) for c in streamed]
    assert summary == [(1, 150, "IDENTIFICATION DIVISION"), (141, 250, "IDENTIFICATION DIVISION")]
    assert summary == [(c.start_line, c.end_line, c.section_label) for c in batch]
    assert [c.content for c in streamed] == [c.content for c in batch]
    assert all(c.strategy == "logical" for c in streamed)


def test_stream_carries_section_label_past_dropped_header():
    lines = ["       PROCEDURE DIVISION."] + [f"           MOVE {i} TO B." for i in range(450)]
    content = "\n".join(lines)
    options = ChunkOptions(strategy="logical")

    streamed = list(chunk_stream(content.splitlines(keepends=True), "BIG.cbl", options))
    batch = chunk(content, "BIG.cbl", options)

    assert len(streamed) == len(batch) > 2
    assert [c.section_label for c in streamed] == ["PROCEDURE DIVISION"] * len(batch)
    assert [(c.start_line, c.end_line) for c in streamed] == [(c.start_line, c.end_line) for c in batch]


def test_stream_follows_size_strategy():
    content = "\n".join(("abc" * 20) + str(i) for i in range(300))
    pieces = [content[i:i + 500] for i in range(0, len(content), 500)]

    streamed = list(chunk_stream(pieces, "blob", size_hint=len(content)))
    batch = chunk(content, "blob")

    assert all(c.strategy == "size" for c in streamed)
    assert [(c.offset, c.start_line, c.end_line, c.content) for c in streamed] == \
        [(c.offset, c.start_line, c.end_line, c.content) for c in batch]
    assert [c.is_last for c in streamed] == [c.is_last for c in batch]
    assert reassemble(streamed) == content


def test_stream_rejects_bad_options_before_iteration():
    with pytest.raises(ChunkingConfigError):
        chunk_stream(iter([]), "x.txt", ChunkOptions(max_lines_per_chunk=10, overlap_lines=10))


def test_chunk_file_and_stats(tmp_path):
    path = tmp_path / "ORDERS.txt"
    path.write_text(numbered(450), encoding="utf-8")
    chunks = chunk_file(str(path))
    assert chunks[0].file_name == "ORDERS.txt"

    stats = chunk_stats(chunks)
    assert stats["total_chunks"] == len(chunks)
    assert stats["largest_chunk"] >= stats["smallest_chunk"]
    assert chunk_stats([]) == {"total_chunks": 0}
