"""Structural outline of a script: knots, stitches, choices.

Regex-level scanning only; the compiler is not involved, so the outline is
available even while the script does not compile. Comment lines and `@`
command lines are skipped.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

_KNOT_RE = re.compile(r"^\s*(={2,})\s*(\w+)\s*=*\s*$")
_STITCH_RE = re.compile(r"^\s*=\s*(\w+)\s*$")
_CHOICE_RE = re.compile(r"^\s*(\*+|\++)\s*(.*)$")
_DIVERT_RE = re.compile(r"(->|<-)\s*([\w.]+)")
_WORD_RE = re.compile(r"[\w.]+")


class Position(BaseModel):
    line: int  # 0-based
    character: int = 0


class OutlineChoice(BaseModel):
    text: str
    line: int
    level: int
    knot: str = ""
    stitch: str | None = None


class OutlineStitch(BaseModel):
    name: str
    line: int


class OutlineKnot(BaseModel):
    name: str
    line: int
    stitches: list[OutlineStitch] = Field(default_factory=list)


class Outline(BaseModel):
    knots: list[OutlineKnot] = Field(default_factory=list)
    choices: list[OutlineChoice] = Field(default_factory=list)


def parse_outline(text: str) -> Outline:
    outline = Outline()
    knot: OutlineKnot | None = None
    stitch: OutlineStitch | None = None

    for i, line in enumerate(text.split("\n")):
        stripped = line.strip()
        if not stripped or stripped.startswith(("//", "/*", "@")):
            continue

        match = _KNOT_RE.match(line)
        if match:
            knot = OutlineKnot(name=match.group(2), line=i)
            outline.knots.append(knot)
            stitch = None
            continue

        match = _STITCH_RE.match(line)
        if match and knot is not None:
            stitch = OutlineStitch(name=match.group(1), line=i)
            knot.stitches.append(stitch)
            continue

        match = _CHOICE_RE.match(line)
        if match:
            outline.choices.append(OutlineChoice(
                text=re.sub(r"[\[\]]", "", match.group(2)).strip(),
                line=i,
                level=len(match.group(1)),
                knot=knot.name if knot else "",
                stitch=stitch.name if stitch else None,
            ))

    return outline


def find_definition(text: str, line: int, character: int) -> Position | None:
    """Position of the knot or stitch a divert under the cursor points at."""
    lines = text.split("\n")
    if not 0 <= line < len(lines):
        return None
    word = _word_at(lines[line], character)
    if word is None:
        return None
    if not any(m.group(2) == word for m in _DIVERT_RE.finditer(lines[line])):
        return None

    knot_name, _, stitch_name = word.partition(".")
    outline = parse_outline(text)
    for knot in outline.knots:
        if knot.name == knot_name:
            if not stitch_name:
                return Position(line=knot.line, character=lines[knot.line].index(knot.name))
            for stitch in knot.stitches:
                if stitch.name == stitch_name:
                    return _stitch_position(lines, stitch)
            return None

    # A bare name can also be a stitch of the surrounding knot.
    if not stitch_name:
        owner = _knot_at(outline, line)
        if owner is not None:
            for stitch in owner.stitches:
                if stitch.name == word:
                    return _stitch_position(lines, stitch)
    return None


def _word_at(line: str, character: int) -> str | None:
    for match in _WORD_RE.finditer(line):
        if match.start() <= character <= match.end():
            return match.group(0)
    return None


def _knot_at(outline: Outline, line: int) -> OutlineKnot | None:
    owner = None
    for knot in outline.knots:
        if knot.line <= line:
            owner = knot
    return owner


def _stitch_position(lines: list[str], stitch: OutlineStitch) -> Position:
    return Position(line=stitch.line, character=lines[stitch.line].index(stitch.name))
