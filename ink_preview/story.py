"""Built-in story backend for a subset of ink.

InkCompiler turns script text into an InkStory; each InkStory hands out
independent InkRuntime instances. It exists so the preview runs without a
third-party ink engine, and it is deliberately small. Supported:

    INCLUDE name                  inlined before compilation
    // comment, /* comment */     stripped
    TODO: ..., EXTERNAL f(...)    ignored
    === knot ===, = stitch        containers
    Text # tag # tag              a transcript line with tags
    # tag                         tags for the next line
    * choice, + sticky choice     one level only; [..] suppresses output
    - gather                      continues after a choice group
    -> target, text -> target     knot, knot.stitch, local stitch, END, DONE
    ~ func(arg, ...)              recorded as a FunctionEvent

Anything else that looks like ink logic (VAR, nested choices, functions)
is reported as a compile error with its line number.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from ink_preview.errors import CompileError
from ink_preview.models import Choice, FunctionEvent, StoryLine, StoryOutput
from ink_preview.runtime import IncludeResolver

logger = logging.getLogger(__name__)

ROOT = ""
END_TARGETS = frozenset({"END", "DONE"})

# A runaway divert loop with no choices must not hang the preview.
MAX_STEPS = 10_000

_INCLUDE_RE = re.compile(r"^INCLUDE\s+(.+?)\s*$")
_KNOT_RE = re.compile(r"^={2,}\s*(\w+)\s*=*\s*$")
_FUNCTION_KNOT_RE = re.compile(r"^={2,}\s*function\b")
_STITCH_RE = re.compile(r"^=\s*(\w+)\s*$")
_CHOICE_RE = re.compile(r"^([*+][*+\s]*?)\s*([^*+\s].*|)$")
_GATHER_RE = re.compile(r"^-(?!>)\s*(.*)$")
_CALL_RE = re.compile(r"^~\s*(\w+)\s*\((.*)\)\s*$")
_DIVERT_RE = re.compile(r"^->\s*([\w.]+)\s*$")
_TRAILING_DIVERT_RE = re.compile(r"^(.*?)\s*->\s*([\w.]+)\s*$")
_UNSUPPORTED_RE = re.compile(r"^(VAR|CONST|LIST)\b|^~|^\{")


class StoryRuntimeError(RuntimeError):
    """Raised when a running story cannot make progress."""


# ---------------------------------------------------------------------------
# Compiled instructions
# ---------------------------------------------------------------------------

@dataclass
class _Text:
    text: str
    tags: list[str]


@dataclass
class _Call:
    name: str
    args: list[Any]


@dataclass
class _Divert:
    target: str
    knot: str  # knot the divert was written in, for local stitch lookup
    line: str
    resolved: str = ""


@dataclass
class _ChoiceDef:
    id: int
    display: str
    output: str
    sticky: bool
    body: list[_Instruction] = field(default_factory=list)


@dataclass
class _ChoiceGroup:
    choices: list[_ChoiceDef] = field(default_factory=list)


_Instruction = Union[_Text, _Call, _Divert, _ChoiceGroup]


@dataclass
class _SourceLine:
    text: str
    origin: str  # "<file>:<line>" for error messages


# ---------------------------------------------------------------------------
# InkStory / InkRuntime
# ---------------------------------------------------------------------------

class InkStory:
    """An immutable compiled story. Safe to share between runtimes."""

    def __init__(
        self,
        containers: dict[str, list[_Instruction]],
        stitches: dict[str, list[str]],
    ) -> None:
        self._containers = containers
        self._stitches = stitches

    @property
    def knots(self) -> list[str]:
        return [k for k in self._containers if k and "." not in k]

    def container(self, key: str) -> list[_Instruction]:
        return self._containers[key]

    def fallthrough(self, key: str) -> str | None:
        """A knot that runs out of content continues in its first stitch."""
        stitches = self._stitches.get(key)
        return stitches[0] if stitches else None

    def new_runtime(self) -> InkRuntime:
        return InkRuntime(self)


@dataclass
class _Frame:
    container: str | None  # None for a choice body
    instructions: list[_Instruction]
    pos: int = 0


class InkRuntime:
    """One playthrough of an InkStory."""

    def __init__(self, story: InkStory) -> None:
        self._story = story
        self._stack: list[_Frame] = []
        self._pending: list[_ChoiceDef] = []
        self._chosen: set[int] = set()
        self.start()

    def start(self) -> None:
        self._stack = [_Frame(ROOT, self._story.container(ROOT))]
        self._pending = []
        self._chosen = set()

    def continue_until_choice(self) -> StoryOutput:
        out = StoryOutput()
        if self._pending:
            return out

        steps = 0
        while self._stack:
            steps += 1
            if steps > MAX_STEPS:
                raise StoryRuntimeError("Story made no progress (divert loop without choices?)")

            frame = self._stack[-1]
            if frame.pos >= len(frame.instructions):
                self._stack.pop()
                if not self._stack and frame.container is not None:
                    nxt = self._story.fallthrough(frame.container)
                    if nxt is not None:
                        self._enter(nxt)
                continue

            instr = frame.instructions[frame.pos]
            frame.pos += 1

            if isinstance(instr, _Text):
                out.lines.append(StoryLine(text=instr.text, tags=list(instr.tags)))
            elif isinstance(instr, _Call):
                out.events.append(FunctionEvent(function_name=instr.name, args=list(instr.args)))
            elif isinstance(instr, _Divert):
                if instr.resolved in END_TARGETS:
                    self._stack.clear()
                else:
                    self._enter(instr.resolved)
            elif isinstance(instr, _ChoiceGroup):
                available = [c for c in instr.choices if c.sticky or c.id not in self._chosen]
                if available:
                    self._pending = available
                    return out

        return out

    def current_choices(self) -> list[Choice]:
        return [Choice(index=i, text=c.display) for i, c in enumerate(self._pending)]

    def choose(self, index: int) -> StoryOutput:
        if not 0 <= index < len(self._pending):
            raise IndexError(f"choice index {index} out of range")
        choice = self._pending[index]
        self._pending = []
        if not choice.sticky:
            self._chosen.add(choice.id)

        out = StoryOutput()
        if choice.output:
            out.lines.append(StoryLine(text=choice.output))
        self._stack.append(_Frame(None, choice.body))
        rest = self.continue_until_choice()
        out.lines.extend(rest.lines)
        out.events.extend(rest.events)
        return out

    def is_ended(self) -> bool:
        return not self._stack and not self._pending

    def _enter(self, key: str) -> None:
        self._stack = [_Frame(key, self._story.container(key))]


# ---------------------------------------------------------------------------
# InkCompiler
# ---------------------------------------------------------------------------

class InkCompiler:
    """Compiles ink-subset source text into an InkStory."""

    def compile(self, source: str, include_resolver: IncludeResolver) -> InkStory:
        logger.debug("Compiling story, content length=%d", len(source))
        root, knots = _expand_includes(source, "<main>", include_resolver, ())
        story = _Parser(root + knots).parse()
        logger.info("Compilation successful: %d knot(s)", len(story.knots))
        return story


def _expand_includes(
    source: str,
    origin: str,
    resolver: IncludeResolver,
    seen: tuple[Path, ...],
) -> tuple[list[_SourceLine], list[_SourceLine]]:
    """Split a file into (root lines, knot lines), following INCLUDEs.

    An included file's root content lands where the INCLUDE stands. Its knots
    go after the includer's own knots so they cannot capture the lines that
    follow the INCLUDE.
    """
    root: list[_SourceLine] = []
    knots: list[_SourceLine] = []
    included_knots: list[_SourceLine] = []
    in_block = False
    for lineno, raw in enumerate(source.splitlines(), start=1):
        text, in_block = _strip_comments(raw, in_block)
        text = text.strip()
        match = _INCLUDE_RE.match(text)
        if not match:
            if _KNOT_RE.match(text) or _FUNCTION_KNOT_RE.match(text):
                knots.append(_SourceLine(text, f"{origin}:{lineno}"))
            else:
                (knots if knots else root).append(_SourceLine(text, f"{origin}:{lineno}"))
            continue
        path = resolver.resolve(match.group(1))
        if path in seen:
            raise CompileError([f"{origin}:{lineno}: Circular INCLUDE of {path.name}"])
        content = resolver.load(path)
        inc_root, inc_knots = _expand_includes(content, path.name, resolver, seen + (path,))
        (knots if knots else root).extend(inc_root)
        included_knots.extend(inc_knots)
    return root, knots + included_knots


def _strip_comments(line: str, in_block: bool) -> tuple[str, bool]:
    out = []
    i = 0
    while i < len(line):
        if in_block:
            end = line.find("*/", i)
            if end == -1:
                return "".join(out), True
            i = end + 2
            in_block = False
        elif line.startswith("/*", i):
            in_block = True
            i += 2
        elif line.startswith("//", i):
            break
        else:
            out.append(line[i])
            i += 1
    return "".join(out), in_block


class _Parser:
    def __init__(self, lines: list[_SourceLine]) -> None:
        self._lines = lines
        self._containers: dict[str, list[_Instruction]] = {ROOT: []}
        self._stitches: dict[str, list[str]] = {}
        self._diverts: list[_Divert] = []
        self._errors: list[str] = []
        self._knot = ROOT
        self._container: list[_Instruction] = self._containers[ROOT]
        self._target: list[_Instruction] = self._container
        self._group: _ChoiceGroup | None = None
        self._pending_tags: list[str] = []
        self._next_choice_id = 0

    def parse(self) -> InkStory:
        for line in self._lines:
            if line.text:
                self._parse_line(line)
        self._resolve_diverts()
        if self._errors:
            raise CompileError(self._errors)
        return InkStory(self._containers, self._stitches)

    def _error(self, line: _SourceLine, message: str) -> None:
        self._errors.append(f"{line.origin}: {message}")

    def _parse_line(self, line: _SourceLine) -> None:
        text = line.text

        if text.startswith(("TODO:", "EXTERNAL ")):
            return

        if _FUNCTION_KNOT_RE.match(text):
            self._error(line, "Functions are not supported")
            return

        match = _KNOT_RE.match(text)
        if match:
            self._open_container(line, match.group(1), stitch=False)
            return

        match = _STITCH_RE.match(text)
        if match:
            if self._knot == ROOT:
                self._error(line, f"Stitch '{match.group(1)}' must be inside a knot")
            else:
                self._open_container(line, match.group(1), stitch=True)
            return

        match = _CHOICE_RE.match(text)
        if match:
            self._parse_choice(line, match.group(1).replace(" ", ""), match.group(2))
            return

        match = _GATHER_RE.match(text)
        if match:
            self._group = None
            self._target = self._container
            if match.group(1):
                self._parse_content(line, match.group(1))
            return

        match = _CALL_RE.match(text)
        if match:
            self._target.append(_Call(match.group(1), _parse_args(match.group(2))))
            return

        if _UNSUPPORTED_RE.match(text):
            self._error(line, f"Unsupported construct: {text}")
            return

        if text.startswith("#"):
            self._pending_tags.extend(_split_tags(text))
            return

        self._parse_content(line, text)

    def _open_container(self, line: _SourceLine, name: str, stitch: bool) -> None:
        if stitch:
            key = f"{self._knot.split('.')[0]}.{name}"
            self._stitches.setdefault(key.split(".")[0], []).append(key)
        else:
            key = name
            self._knot = name
        if key in self._containers:
            self._error(line, f"Duplicate knot or stitch '{key}'")
        self._containers[key] = []
        self._container = self._containers[key]
        self._target = self._container
        self._group = None

    def _parse_choice(self, line: _SourceLine, markers: str, content: str) -> None:
        if len(markers) > 1:
            self._error(line, "Nested choices are not supported")
            return

        divert = None
        match = _TRAILING_DIVERT_RE.match(content)
        if match:
            content, divert = match.group(1), match.group(2)

        display, output = _split_choice_text(content.strip())
        if not display:
            self._error(line, "Choice has no text")
            return

        if self._group is None:
            self._group = _ChoiceGroup()
            self._container.append(self._group)
        choice = _ChoiceDef(
            id=self._next_choice_id,
            display=display,
            output=output,
            sticky=markers == "+",
        )
        self._next_choice_id += 1
        self._group.choices.append(choice)
        self._target = choice.body
        if divert:
            self._add_divert(line, divert)

    def _parse_content(self, line: _SourceLine, text: str) -> None:
        divert = None
        match = _DIVERT_RE.match(text)
        if match:
            self._add_divert(line, match.group(1))
            return
        match = _TRAILING_DIVERT_RE.match(text)
        if match:
            text, divert = match.group(1), match.group(2)

        body, _, tag_part = text.partition("#")
        tags = self._pending_tags + (_split_tags("#" + tag_part) if tag_part else [])
        body = body.strip()
        if body:
            self._target.append(_Text(body, tags))
            self._pending_tags = []
        if divert:
            self._add_divert(line, divert)

    def _add_divert(self, line: _SourceLine, target: str) -> None:
        divert = _Divert(target=target, knot=self._knot.split(".")[0], line=line.origin)
        self._diverts.append(divert)
        self._target.append(divert)

    def _resolve_diverts(self) -> None:
        for divert in self._diverts:
            target = divert.target
            local = f"{divert.knot}.{target}" if divert.knot else ""
            if target in END_TARGETS:
                divert.resolved = target
            elif local and local in self._containers:
                divert.resolved = local
            elif target in self._containers and target != ROOT:
                divert.resolved = target
            else:
                self._errors.append(f"{divert.line}: Divert target not found: -> {target}")


def _split_choice_text(content: str) -> tuple[str, str]:
    """`A[B]C` shows "AB" as the choice and prints "AC" once chosen."""
    start = content.find("[")
    end = content.find("]", start + 1)
    if start == -1 or end == -1:
        return content, content
    before, inside, after = content[:start], content[start + 1:end], content[end + 1:]
    display = " ".join((before + inside).split())
    output = " ".join((before + after).split())
    return display, output


def _split_tags(text: str) -> list[str]:
    return [t.strip() for t in text.split("#")[1:] if t.strip()]


def _parse_args(raw: str) -> list[Any]:
    args: list[Any] = []
    for token in re.findall(r'"[^"]*"|[^,]+', raw):
        token = token.strip()
        if not token:
            continue
        if token.startswith('"') and token.endswith('"'):
            args.append(token[1:-1])
        elif token in ("true", "false"):
            args.append(token == "true")
        else:
            try:
                args.append(int(token))
            except ValueError:
                try:
                    args.append(float(token))
                except ValueError:
                    args.append(token)
    return args
