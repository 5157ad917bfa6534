"""
Section boundary detection for legacy source formats.

Recognises COBOL divisions, sections and paragraph headers, plus RPG/CL
procedure and subroutine boundaries. Used by the logical chunking strategy
to end windows on a structural break instead of mid-paragraph.
"""
from __future__ import annotations
from typing import List, Optional
import re

# COBOL fixed format: columns 1-6 hold a sequence number, column 7 an indicator.
_SEQUENCE_AREA = re.compile(r"^\d{6}[ \-*/D]?")

_DIVISION = re.compile(r"^\s*([A-Z][A-Z0-9-]*)\s+DIVISION\b")
_SECTION = re.compile(r"^\s*([A-Z0-9][A-Z0-9-]*)\s+SECTION\s*\.?\s*$")
# Paragraph names sit alone on a line in area A and end with a period.
_PARAGRAPH = re.compile(r"^\s{0,4}([A-Z0-9][A-Z0-9-]*)\.\s*$")
_RPG_PROC = re.compile(r"^\s*DCL-PROC\s+([A-Z0-9_#@$]+)")
_RPG_SUBR = re.compile(r"^\s*BEGSR\s+([A-Z0-9_#@$]+)")
_CL_PGM = re.compile(r"^\s*(PGM)\b")

_PATTERNS = [_DIVISION, _SECTION, _RPG_PROC, _RPG_SUBR, _CL_PGM, _PARAGRAPH]

# Words that end with a period on their own line but are not paragraph names.
_NOT_PARAGRAPHS = {"EXIT", "GOBACK", "STOP", "END-IF", "END-PERFORM", "END-EVALUATE"}


def _normalize(line: str) -> str:
    return _SEQUENCE_AREA.sub("", line.rstrip()).upper()


def section_name(line: str) -> Optional[str]:
    """Return the section label a line opens, or None if it is not a boundary."""
    text = _normalize(line)
    if not text.strip() or text.lstrip().startswith("*"):
        return None
    for pattern in _PATTERNS:
        m = pattern.match(text)
        if not m:
            continue
        name = m.group(1)
        if pattern is _PARAGRAPH and name in _NOT_PARAGRAPHS:
            return None
        if pattern is _DIVISION:
            return f"{name} DIVISION"
        if pattern is _SECTION:
            return f"{name} SECTION"
        return name
    return None


def find_boundaries(lines: List[str]) -> List[int]:
    """Indices of lines that open a new logical section."""
    return [i for i, line in enumerate(lines) if section_name(line) is not None]


def label_at(lines: List[str], boundaries: List[int], index: int) -> Optional[str]:
    """Label of the nearest section header at or before ``index``."""
    label = None
    for b in boundaries:
        if b > index:
            break
        label = section_name(lines[b])
    return label
