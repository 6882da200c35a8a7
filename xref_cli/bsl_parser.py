"""Lightweight structural parser for BSL (1C:Enterprise) modules.

Produces the method / statement tree of a module with character offsets,
enough to address any code position as ``//@methods.N/@statements.M`` and
map it back to a line. It does not build expression trees.

Both English and Russian keyword spellings are recognized.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Keywords
# ---------------------------------------------------------------------------
_HEADER_RE = re.compile(
    r"^[ \t]*(Procedure|Function|Процедура|Функция)[ \t]+(\w+)[ \t]*\(",
    re.IGNORECASE | re.MULTILINE,
)
_END_RE = re.compile(
    r"(?<![\w.])(EndProcedure|EndFunction|КонецПроцедуры|КонецФункции)(?!\w)",
    re.IGNORECASE,
)
_EXPORT_RE = re.compile(r"\s*(Export|Экспорт)(?!\w)", re.IGNORECASE)
_VAL_RE = re.compile(r"^(Val|Знач)\s+", re.IGNORECASE)

# A statement ends after a line that closes on one of these ...
_BLOCK_OPEN_RE = re.compile(
    r"(?<![\w.])(Then|Do|Else|Try|Except|Тогда|Цикл|Иначе|Попытка|Исключение)[ \t\r]*$",
    re.IGNORECASE | re.MULTILINE,
)
# ... and before a line that opens with one of these
_BLOCK_CLOSE_RE = re.compile(
    r"^[ \t]*(ElsIf|Else|EndIf|EndDo|EndTry|Except"
    r"|ИначеЕсли|Иначе|КонецЕсли|КонецЦикла|КонецПопытки|Исключение)(?!\w)",
    re.IGNORECASE | re.MULTILINE,
)
_DIRECTIVE_RE = re.compile(r"^[ \t]*[#&][^\n]*", re.MULTILINE)

_REGION_OPEN = ("#region", "#область")
_REGION_CLOSE = ("#endregion", "#конецобласти")
_FUNCTION_KEYWORDS = {"function", "функция"}

_FRAGMENT_RE = re.compile(r"^(?://)?(?:@methods\.(\d+))?/?(?:@statements\.(\d+))?(?:/@offset\.(\d+))?$")


# ===================================================================
# Source masking
# ===================================================================

def mask_source(text: str) -> Tuple[str, str]:
    """Blank out comments, and separately comments plus literal contents.

    Returns ``(code_text, bare_text)``; both have the length and the line
    breaks of *text*, so offsets stay valid. In *bare_text* only the
    quotes of string and date literals survive.
    """
    code = list(text)
    bare = list(text)
    n = len(text)
    i = 0
    quote: Optional[str] = None
    while i < n:
        ch = text[i]
        if quote is not None:
            if ch == quote:
                if quote == '"' and i + 1 < n and text[i + 1] == '"':
                    bare[i] = bare[i + 1] = " "
                    i += 2
                    continue
                quote = None
            elif ch == "\n":
                # multi-line strings continue on lines starting with '|'
                rest = text[i + 1:].lstrip(" \t")
                if quote != '"' or not rest.startswith(("|", "//")):
                    quote = None
            elif ch != "\r":
                bare[i] = " "
            i += 1
            continue
        if ch in "\"'":
            quote = ch
        elif ch == "/" and i + 1 < n and text[i + 1] == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            for k in range(i, end):
                code[k] = bare[k] = " "
            i = end
            continue
        i += 1
    return "".join(code), "".join(bare)


# ===================================================================
# Line index
# ===================================================================

class LineIndex:
    """Offset -> 1-based line number map of a text."""

    def __init__(self, text: str) -> None:
        self._starts = [0]
        for match in re.finditer("\n", text):
            self._starts.append(match.end())
        self._length = len(text)

    def line_of(self, offset: int) -> int:
        if offset < 0 or offset > self._length:
            raise ValueError(f"Offset {offset} outside text of length {self._length}")
        return bisect.bisect_right(self._starts, offset)

    @property
    def line_count(self) -> int:
        return len(self._starts)


# ===================================================================
# Module tree
# ===================================================================

@dataclass
class BslStatement:
    start: int
    end: int


@dataclass
class BslParam:
    name: str
    by_value: bool = False
    has_default: bool = False

    def render(self) -> str:
        text = f"Val {self.name}" if self.by_value else self.name
        return f"{text} = ..." if self.has_default else text


@dataclass
class BslMethod:
    name: str
    is_function: bool
    is_export: bool
    params: List[BslParam]
    start: int          # offset of the Procedure/Function keyword
    name_offset: int
    body_start: int     # first offset after the header
    end: int            # offset just past the end keyword
    start_line: int
    end_line: int
    pragmas: List[str] = field(default_factory=list)
    region: Optional[str] = None
    statements: List[BslStatement] = field(default_factory=list)

    @property
    def kind(self) -> str:
        return "Function" if self.is_function else "Procedure"

    @property
    def signature(self) -> str:
        params = ", ".join(param.render() for param in self.params)
        text = f"{self.kind} {self.name}({params})"
        return f"{text} Export" if self.is_export else text

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end


@dataclass
class BslModule:
    path: str
    text: str
    line_index: LineIndex
    bare_text: str = ""     # comments and literal contents blanked
    methods: List[BslMethod] = field(default_factory=list)
    statements: List[BslStatement] = field(default_factory=list)

    def method_named(self, name: str) -> Optional[BslMethod]:
        wanted = name.lower()
        for method in self.methods:
            if method.name.lower() == wanted:
                return method
        return None

    def method_at(self, offset: int) -> Optional[Tuple[int, BslMethod]]:
        for index, method in enumerate(self.methods):
            if method.contains(offset):
                return index, method
        return None

    def is_declaration(self, offset: int) -> bool:
        """True when *offset* is the name of a method declaration."""
        found = self.method_at(offset)
        if found is None:
            return False
        method = found[1]
        return method.name_offset <= offset < method.name_offset + len(method.name)

    def fragment_for(self, offset: int) -> Optional[str]:
        """Address of *offset* inside its enclosing statement, or ``None``.

        ``//@methods.1/@statements.0/@offset.8`` is the ninth character of the
        first statement of the second method.
        """
        found = self.method_at(offset)
        if found is not None:
            index, method = found
            statements = method.statements
            prefix = f"//@methods.{index}/"
        else:
            statements = self.statements
            prefix = "//"
        position = _statement_at(statements, offset)
        if position is None:
            return None
        inner = offset - statements[position].start
        return f"{prefix}@statements.{position}/@offset.{inner}"

    def resolve_fragment(self, fragment: str) -> int:
        """Offset addressed by *fragment*: a node start, or a position inside it.

        Raises:
            ValueError: malformed fragment.
            IndexError: fragment addresses a node or position the module does not have.
        """
        match = _FRAGMENT_RE.match(fragment or "")
        if match is None or (match.group(1) is None and match.group(2) is None):
            raise ValueError(f"Unsupported fragment: {fragment!r}")
        method_no, statement_no, inner = match.groups()
        if method_no is None:
            node = self.statements[int(statement_no)]
        elif statement_no is None:
            node = self.methods[int(method_no)]
        else:
            node = self.methods[int(method_no)].statements[int(statement_no)]
        if inner is None:
            return node.start
        if node.start + int(inner) >= node.end:
            raise IndexError(f"Offset {inner} past the end of {fragment!r}")
        return node.start + int(inner)

    def line_of(self, offset: int) -> int:
        return self.line_index.line_of(offset)


def _statement_at(statements: List[BslStatement], offset: int) -> Optional[int]:
    for position, statement in enumerate(statements):
        if statement.start <= offset < statement.end:
            return position
    return None


def method_ordinal(fragment: Optional[str]) -> Optional[int]:
    """The ``@methods.N`` ordinal of a fragment, if it has one."""
    if not fragment:
        return None
    match = re.search(r"@methods\.(\d+)", fragment)
    return int(match.group(1)) if match else None


# ===================================================================
# Parser
# ===================================================================

class BslModuleParser:
    """Parse BSL source text into a :class:`BslModule`."""

    def parse(self, text: str, path: str = "") -> BslModule:
        code_text, bare_text = mask_source(text)
        line_index = LineIndex(text)
        code_lines = code_text.split("\n")
        regions = self._regions_by_line(code_lines)
        module = BslModule(path=path, text=text, line_index=line_index, bare_text=bare_text)

        cursor = 0
        gaps: List[Tuple[int, int]] = []
        while True:
            header = _HEADER_RE.search(bare_text, cursor)
            if header is None:
                break
            method = self._parse_method(header, text, code_text, bare_text, line_index)
            if method is None:
                logger.debug("Unterminated method header at offset %s in %s", header.start(), path)
                break
            method.region = regions[method.start_line - 1]
            method.pragmas = self._pragmas_before(code_lines, method.start_line)
            gaps.append((cursor, method.start))
            module.methods.append(method)
            cursor = method.end
        gaps.append((cursor, len(text)))

        for start, end in gaps:
            module.statements.extend(_split_statements(bare_text, start, end))
        return module

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def _parse_method(
        self,
        header: "re.Match[str]",
        text: str,
        code_text: str,
        bare_text: str,
        line_index: LineIndex,
    ) -> Optional[BslMethod]:
        open_paren = header.end() - 1
        close_paren = _matching_paren(bare_text, open_paren)
        if close_paren is None:
            return None
        params = _parse_params(code_text[open_paren + 1:close_paren], bare_text[open_paren + 1:close_paren])

        body_start = close_paren + 1
        export = _EXPORT_RE.match(bare_text, body_start)
        if export is not None:
            body_start = export.end()

        end_kw = _END_RE.search(bare_text, body_start)
        if end_kw is None:
            return None

        keyword_start = header.start(1)
        method = BslMethod(
            name=header.group(2),
            is_function=header.group(1).lower() in _FUNCTION_KEYWORDS,
            is_export=export is not None,
            params=params,
            start=keyword_start,
            name_offset=header.start(2),
            body_start=body_start,
            end=end_kw.end(),
            start_line=line_index.line_of(keyword_start),
            end_line=line_index.line_of(end_kw.start()),
        )
        method.statements = _split_statements(bare_text, body_start, end_kw.start())
        return method

    # ------------------------------------------------------------------
    # Regions and pragmas
    # ------------------------------------------------------------------

    @staticmethod
    def _regions_by_line(code_lines: List[str]) -> List[Optional[str]]:
        """Innermost ``#Region`` name for every line."""
        stack: List[str] = []
        per_line: List[Optional[str]] = []
        for line in code_lines:
            stripped = line.strip()
            lowered = stripped.lower()
            if lowered.startswith(_REGION_CLOSE):
                if stack:
                    stack.pop()
            elif lowered.startswith(_REGION_OPEN):
                parts = stripped.split(None, 1)
                stack.append(parts[1].strip() if len(parts) > 1 else "")
            per_line.append(stack[-1] if stack else None)
        return per_line

    @staticmethod
    def _pragmas_before(lines: List[str], header_line: int) -> List[str]:
        pragmas: List[str] = []
        line_no = header_line - 2
        while line_no >= 0:
            stripped = lines[line_no].strip()
            if stripped.startswith("&"):
                pragmas.append(stripped)
            elif stripped:
                break
            line_no -= 1
        pragmas.reverse()
        return pragmas


# ===================================================================
# Helpers
# ===================================================================

def _matching_paren(bare_text: str, open_paren: int) -> Optional[int]:
    depth = 0
    for index in range(open_paren, len(bare_text)):
        ch = bare_text[index]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return index
    return None


def _parse_params(code_part: str, bare_part: str) -> List[BslParam]:
    params: List[BslParam] = []
    if not bare_part.strip():
        return params
    start = 0
    pieces: List[str] = []
    for index, ch in enumerate(bare_part):
        if ch == ",":
            pieces.append(code_part[start:index])
            start = index + 1
    pieces.append(code_part[start:])
    for piece in pieces:
        piece = " ".join(piece.split())
        if not piece:
            continue
        by_value = bool(_VAL_RE.match(piece))
        if by_value:
            piece = _VAL_RE.sub("", piece, count=1)
        name, _, default = piece.partition("=")
        params.append(BslParam(name=name.strip(), by_value=by_value, has_default=bool(default.strip())))
    return params


def _split_statements(bare_text: str, start: int, end: int) -> List[BslStatement]:
    """Cut ``bare_text[start:end]`` at ``;``, block keywords and directive lines."""
    if start >= end:
        return []
    segment = bare_text[start:end]
    cuts = {0, len(segment)}

    for index, ch in enumerate(segment):
        if ch == ";":
            cuts.add(index + 1)
    for match in _BLOCK_OPEN_RE.finditer(segment):
        cuts.add(match.end())
    for match in _BLOCK_CLOSE_RE.finditer(segment):
        cuts.add(match.start(1))
    for match in _DIRECTIVE_RE.finditer(segment):
        cuts.add(match.start())
        cuts.add(match.end())

    statements: List[BslStatement] = []
    ordered = sorted(cuts)
    for left, right in zip(ordered, ordered[1:]):
        piece = segment[left:right]
        stripped = piece.strip()
        if not stripped or stripped == ";":
            continue
        lead = left + (len(piece) - len(piece.lstrip()))
        if stripped[0] in "#&":
            continue
        tail = left + len(piece.rstrip())
        statements.append(BslStatement(start=start + lead, end=start + tail))
    return statements
