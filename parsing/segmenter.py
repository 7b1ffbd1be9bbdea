"""
Lexical segmenter for C# controller documents.

Splits a document into type declarations and, inside each body, into member
headers (leading attribute groups + signature). Block boundaries come from a
depth-tracking scanner that runs over a *masked* copy of the text in which
string literals, char literals and comments are blanked out, so that a `{` or
`]` inside a route string never shifts the depth. Narrow regular expressions
are only applied inside the bounded blocks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .base import SourceRange, WarningKind, WarningSink, location_of

logger = logging.getLogger("endpoint_lens.parsing.segmenter")


TYPE_DECL_PATTERN = re.compile(
    r'\b(?P<kind>record\s+class|record\s+struct|class|struct|record|enum|interface)\s+(?P<name>[A-Za-z_]\w*)'
)
NAMESPACE_PATTERN = re.compile(r'\bnamespace\s+(?P<name>[\w.]+)\s*(?P<term>[{;])')
NOT_A_TYPE_NAME = {"where", "new", "struct", "class"}

TYPE_MODIFIERS = {
    "public", "private", "protected", "internal", "static", "sealed", "abstract",
    "partial", "readonly", "unsafe", "new", "file", "ref",
}

METHOD_MODIFIERS = {
    "public", "private", "protected", "internal", "static", "async", "virtual",
    "override", "sealed", "new", "abstract", "extern", "unsafe", "partial", "readonly",
}


# =============================================================================
# MASKING
# =============================================================================

def mask_source(text: str, literals: bool = True) -> str:
    """Return `text` with literal and comment contents replaced by spaces.

    Offsets and newlines are preserved. Quote characters are kept so that
    literals remain visible as empty `"   "` runs. Preprocessor directive lines
    are blanked like comments. With `literals=False` only comments and
    directives are blanked.
    """
    out = list(text)
    n = len(text)
    i = 0

    def blank_comment(start: int, end: int):
        for k in range(start, min(end, n)):
            if out[k] != "\n":
                out[k] = " "

    def blank(start: int, end: int):
        if literals:
            blank_comment(start, end)

    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if ch == "/" and nxt == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank_comment(i, end)
            i = end
            continue

        # preprocessor directives (#region, #if, #pragma ...) occupy a whole line
        if ch == "#" and not text[text.rfind("\n", 0, i) + 1:i].strip():
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank_comment(i, end)
            i = end
            continue

        if ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            blank_comment(i, end)
            i = end
            continue

        if ch == '"' and text.startswith('"""', i):
            end = text.find('"""', i + 3)
            end = n if end == -1 else end + 3
            blank(i + 3, end - 3)
            i = end
            continue

        if ch in "@$" and (nxt == '"' or (nxt in "@$" and text[i + 2:i + 3] == '"')):
            prefix = 2 if nxt == '"' else 3
            verbatim = "@" in text[i:i + prefix]
            i = _skip_string(text, i + prefix, verbatim, blank)
            continue

        if ch == '"':
            i = _skip_string(text, i + 1, False, blank)
            continue

        if ch == "'":
            end = _char_literal_end(text, i)
            if end != -1:
                blank(i + 1, end)
                i = end + 1
                continue

        i += 1

    return "".join(out)


def _skip_string(text: str, start: int, verbatim: bool, blank) -> int:
    """Blank a string body starting after its opening quote; return the index past it."""
    n = len(text)
    i = start
    while i < n:
        ch = text[i]
        if verbatim:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    i += 2
                    continue
                blank(start, i)
                return i + 1
        else:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                blank(start, i)
                return i + 1
            if ch == "\n":
                # regular literals cannot span lines
                blank(start, i)
                return i
        i += 1
    blank(start, n)
    return n


def _char_literal_end(text: str, start: int) -> int:
    i = start + 1
    limit = min(len(text), start + 12)
    while i < limit:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "'":
            return i
        if ch == "\n":
            return -1
        i += 1
    return -1


# =============================================================================
# DEPTH SCANNING
# =============================================================================

def find_matching(masked: str, open_pos: int, open_ch: str = "{", close_ch: str = "}",
                  limit: Optional[int] = None) -> int:
    """Index of the bracket closing the one at `open_pos`, or -1."""
    depth = 0
    end = len(masked) if limit is None else min(limit, len(masked))
    for i in range(open_pos, end):
        c = masked[i]
        if c == open_ch:
            depth += 1
        elif c == close_ch:
            depth -= 1
            if depth == 0:
                return i
    return -1


def split_top_level(text: str, separator: str = ",", angle: bool = False) -> List[str]:
    """Split on `separator` outside brackets and quotes.

    With `angle=True` generic brackets (`<`, `>`) count as nesting too, which
    is what parameter lists with nested generics need.
    """
    parts: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    i = 0
    openers = "([{<" if angle else "([{"
    closers = ")]}>" if angle else ")]}"

    while i < len(text):
        ch = text[i]
        if quote:
            current.append(ch)
            if ch == "\\" and quote != "@":
                if i + 1 < len(text):
                    current.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                if quote == "@" and text[i + 1:i + 2] == '"':
                    current.append('"')
                    i += 2
                    continue
                quote = None
            elif ch == "'" and quote == "'":
                quote = None
            i += 1
            continue

        if ch == '"':
            quote = "@" if i > 0 and text[i - 1] == "@" else '"'
        elif ch == "'":
            quote = "'"
        elif ch in openers:
            depth += 1
        elif ch in closers:
            depth = max(0, depth - 1)
        elif ch == separator and depth == 0:
            parts.append("".join(current).strip())
            current = []
            i += 1
            continue
        current.append(ch)
        i += 1

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


# =============================================================================
# DOC COMMENTS
# =============================================================================

_XML_TAG = re.compile(r'<[^>]+>')
_SUMMARY = re.compile(r'<summary>(.*?)</summary>', re.DOTALL)


def extract_doc_comment(raw_region: str) -> Optional[str]:
    """Return the `///` (or trailing `//`) comment text found in a region."""
    doc_lines = []
    plain_lines: List[str] = []
    for line in raw_region.splitlines():
        stripped = line.strip()
        if stripped.startswith("///"):
            doc_lines.append(stripped[3:].strip())
        elif stripped.startswith("//"):
            plain_lines.append(stripped[2:].strip())
        elif stripped and not stripped.startswith(("[", "#")):
            plain_lines = []

    if doc_lines:
        joined = "\n".join(doc_lines)
        summary = _SUMMARY.search(joined)
        body = summary.group(1) if summary else _XML_TAG.sub(" ", joined)
        text = " ".join(body.split())
        return text or None
    if plain_lines:
        return " ".join(" ".join(plain_lines).split()) or None
    return None


# =============================================================================
# BLOCKS
# =============================================================================

@dataclass
class MemberBlock:
    """A member header inside a type body: attributes + signature."""
    attribute_text: str
    signature: str
    doc_comment: Optional[str]
    start: int            # offset of the first attribute or signature token
    end: int              # offset past the member (body included)
    terminator: str       # "{" (block body), ";" or "=>" (expression body)
    accessor_text: str = ""  # raw text of the `{ ... }` block, if any

    @property
    def is_method(self) -> bool:
        head = self.signature.split("=>")[0]
        if "(" not in head:
            return False
        before_paren = head.split("(", 1)[0]
        return not re.search(r'\b(class|record|struct|interface|enum|delegate|event|operator)\b', before_paren)


@dataclass
class TypeBlock:
    """A class/record/struct/enum declaration and its members."""
    kind: str
    name: str
    attribute_text: str
    doc_comment: Optional[str]
    namespace: Optional[str]
    source_range: SourceRange
    type_parameters: Tuple[str, ...] = ()
    base_types: Tuple[str, ...] = ()
    positional_parameters: Optional[str] = None
    body: str = ""
    members: List[MemberBlock] = field(default_factory=list)

    @property
    def is_controller(self) -> bool:
        attr = self.attribute_text
        if re.search(r'\b(ApiController|Route|RoutePrefix)\b', attr):
            return True
        if self.kind != "class":
            return False
        if self.name.endswith("Controller"):
            return True
        return any(re.search(r'Controller(Base)?\b', b) for b in self.base_types)


class DocumentSegmenter:
    """
    Bracket-depth scanner producing type and member blocks for one document.

    Usage:
        segmenter = DocumentSegmenter(text, sink)
        for block in segmenter.type_blocks():
            ...
    """

    def __init__(self, text: str, sink: WarningSink):
        self.text = text
        self.masked = mask_source(text)
        self.sink = sink
        self._namespaces = self._scan_namespaces()

    # -- namespaces -----------------------------------------------------------

    def _scan_namespaces(self) -> List[Tuple[int, int, str]]:
        spans = []
        for match in NAMESPACE_PATTERN.finditer(self.masked):
            if match.group("term") == "{":
                brace = match.end() - 1
                close = find_matching(self.masked, brace)
                end = len(self.masked) if close == -1 else close
            else:
                end = len(self.masked)
            spans.append((match.start(), end, match.group("name")))
        return spans

    def namespace_at(self, offset: int) -> Optional[str]:
        found = None
        for start, end, name in self._namespaces:
            if start <= offset < end:
                found = name
        return found

    # -- type declarations ----------------------------------------------------

    def type_blocks(self) -> List[TypeBlock]:
        blocks: List[TypeBlock] = []
        for match in TYPE_DECL_PATTERN.finditer(self.masked):
            name = match.group("name")
            kind = match.group("kind").split()[0]
            if name in NOT_A_TYPE_NAME or kind == "interface":
                continue
            if not self._is_declaration_start(match.start()):
                continue
            block = self._read_type(match, kind, name)
            if block is not None:
                blocks.append(block)
        logger.debug(f"Segmented {len(blocks)} type declarations")
        return blocks

    def _read_type(self, match: re.Match, kind: str, name: str) -> Optional[TypeBlock]:
        masked = self.masked
        pos = match.end()
        type_params: Tuple[str, ...] = ()
        positional = None

        pos = _skip_ws(masked, pos)
        if pos < len(masked) and masked[pos] == "<":
            close = find_matching(masked, pos, "<", ">")
            if close == -1:
                self._warn(f"Unterminated type parameter list on '{name}'", match.start(), name)
                return None
            type_params = tuple(p.strip() for p in masked[pos + 1:close].split(",") if p.strip())
            pos = _skip_ws(masked, close + 1)

        if pos < len(masked) and masked[pos] == "(":
            close = find_matching(masked, pos, "(", ")")
            if close == -1:
                self._warn(f"Unterminated parameter list on '{name}'", match.start(), name)
                return None
            positional = self.text[pos + 1:close]
            pos = close + 1

        brace = pos
        while brace < len(masked) and masked[brace] not in "{;":
            brace += 1
        if brace >= len(masked):
            self._warn(f"Declaration of '{name}' has no body", match.start(), name)
            return None

        tail = masked[pos:brace]
        base_types: Tuple[str, ...] = ()
        if ":" in tail:
            bases = tail.split(":", 1)[1]
            bases = re.split(r'\bwhere\b', bases)[0]
            base_types = tuple(b.strip() for b in split_top_level(bases, angle=True) if b.strip())

        region_start = self._header_region_start(match.start())
        region = self.text[region_start:match.start()]
        attribute_text = _attribute_groups(self.masked[region_start:match.start()], region)

        body = ""
        members: List[MemberBlock] = []
        if masked[brace] == "{":
            close = find_matching(masked, brace)
            if close == -1:
                self._warn(f"Unterminated body for '{name}'; block dropped", match.start(), name)
                return None
            end = close + 1
            body = self.text[brace + 1:close]
            if kind != "enum":
                members = self.members(brace + 1, close)
        else:
            end = brace + 1

        return TypeBlock(
            kind=kind,
            name=name,
            attribute_text=attribute_text,
            doc_comment=extract_doc_comment(region),
            namespace=self.namespace_at(match.start()),
            source_range=SourceRange(region_start + _leading_ws(region), end),
            type_parameters=type_params,
            base_types=base_types,
            positional_parameters=positional,
            body=body,
            members=members,
        )

    def _is_declaration_start(self, offset: int) -> bool:
        """Only modifiers and attribute groups may precede the keyword on its line."""
        line_start = self.masked.rfind("\n", 0, offset) + 1
        prefix = re.sub(r'\[[^\]]*\]', ' ', self.masked[line_start:offset])
        return all(word in TYPE_MODIFIERS for word in prefix.split())

    def _header_region_start(self, offset: int) -> int:
        i = offset - 1
        while i >= 0 and self.masked[i] not in ";{}":
            i -= 1
        return i + 1

    # -- members --------------------------------------------------------------

    def members(self, start: int, end: int) -> List[MemberBlock]:
        """Split a type body [start, end) into member headers."""
        masked = self.masked
        members: List[MemberBlock] = []
        header_start = start
        pos = start
        bracket = paren = 0
        arrow_at = -1

        while pos < end:
            ch = masked[pos]
            if ch == "[":
                bracket += 1
            elif ch == "]":
                bracket = max(0, bracket - 1)
            elif ch == "(":
                paren += 1
            elif ch == ")":
                paren = max(0, paren - 1)
            elif ch == "=" and masked[pos + 1:pos + 2] == ">" and paren == 0 and bracket == 0 and arrow_at == -1:
                arrow_at = pos
                pos += 2
                continue
            elif ch == "{" and arrow_at != -1:
                close = find_matching(masked, pos, limit=end)
                pos = end if close == -1 else close + 1
                continue
            elif ch in "{;":
                header_end = arrow_at if arrow_at != -1 else pos
                if ch == "{":
                    close = find_matching(masked, pos, limit=end)
                    member_end = end if close == -1 else close + 1
                    accessor = self.text[pos:member_end]
                else:
                    member_end = pos + 1
                    accessor = ""
                terminator = "=>" if arrow_at != -1 else ch
                malformed = bracket > 0 or paren > 0
                member = self._build_member(header_start, header_end, member_end,
                                            terminator, accessor, malformed)
                if member is not None:
                    members.append(member)
                header_start = pos = member_end
                bracket = paren = 0
                arrow_at = -1
                continue
            pos += 1

        return members

    def _build_member(self, start: int, header_end: int, member_end: int, terminator: str,
                      accessor: str, malformed: bool) -> Optional[MemberBlock]:
        masked_header = self.masked[start:header_end]
        raw_header = self.text[start:header_end]
        if not masked_header.strip():
            return None

        first = start + _leading_ws(masked_header)
        if malformed:
            self._warn("Unbalanced attribute or parameter list; member skipped", first,
                       _first_words(raw_header))
            return None

        # leading attribute groups
        i = first - start
        attr_end = i
        while i < len(masked_header) and masked_header[i] == "[":
            close = find_matching(masked_header, i, "[", "]")
            if close == -1:
                self._warn("Unterminated attribute block; member skipped", start + i,
                           _first_words(raw_header))
                return None
            attr_end = close + 1
            i = _skip_ws(masked_header, attr_end)

        attribute_text = raw_header[first - start:attr_end] if attr_end > first - start else ""
        signature = " ".join(mask_source(raw_header[i:], literals=False).split())
        doc_region = raw_header[:first - start] + _comment_lines_between(raw_header[first - start:i])
        return MemberBlock(
            attribute_text=attribute_text,
            signature=signature,
            doc_comment=extract_doc_comment(doc_region),
            start=first,
            end=member_end,
            terminator=terminator,
            accessor_text=accessor,
        )

    def _warn(self, message: str, offset: int, subject: Optional[str] = None):
        location = location_of(self.text, offset)
        logger.warning(f"{message} (line {location.line})")
        self.sink.add(WarningKind.STRUCTURAL, message, location, subject)


# =============================================================================
# METHOD SIGNATURES
# =============================================================================

@dataclass(frozen=True)
class MethodSignature:
    name: str
    return_type: str
    parameters_text: str
    modifiers: Tuple[str, ...] = ()


def parse_method_signature(signature: str) -> Optional[MethodSignature]:
    """Split `public async Task<X> Name(params)` into its parts.

    Returns None for constructors and anything that is not a method.
    """
    masked = mask_source(signature)
    open_paren = masked.find("(")
    if open_paren == -1:
        return None
    close_paren = find_matching(masked, open_paren, "(", ")")
    if close_paren == -1:
        return None

    head = signature[:open_paren].strip()
    # generic method: Name<T>(...)
    generic = re.search(r'(\w)\s*<[^<>]*>$', head)
    if generic and re.search(r'\s\w+\s*<[^<>]*>$', head):
        head = head[:generic.start() + 1]
    words = head.split()
    modifiers = []
    while words and words[0] in METHOD_MODIFIERS:
        modifiers.append(words.pop(0))
    if len(words) < 2:
        return None

    rest = " ".join(words)
    name_match = re.search(r'([A-Za-z_]\w*)$', rest)
    if not name_match:
        return None
    name = name_match.group(1)
    return_type = rest[:name_match.start()].strip()
    if not return_type:
        return None
    return_type = re.sub(r'\s*([<>,\[\]?])\s*', r'\1', return_type).replace(",", ", ")

    return MethodSignature(
        name=name,
        return_type=return_type,
        parameters_text=signature[open_paren + 1:close_paren],
        modifiers=tuple(modifiers),
    )


# =============================================================================
# HELPERS
# =============================================================================

def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _leading_ws(text: str) -> int:
    return len(text) - len(text.lstrip())


def _first_words(text: str, count: int = 6) -> str:
    return " ".join(text.split()[:count])


def _comment_lines_between(raw: str) -> str:
    return "\n".join(line for line in raw.splitlines() if line.strip().startswith("//"))


def _attribute_groups(masked_region: str, raw_region: str) -> str:
    """Collect the raw `[...]` groups of a declaration header region.

    An unterminated group is kept as-is so the attribute parser can report it.
    """
    groups = []
    i = 0
    while i < len(masked_region):
        if masked_region[i] == "[":
            close = find_matching(masked_region, i, "[", "]")
            if close == -1:
                groups.append(raw_region[i:])
                break
            groups.append(raw_region[i:close + 1])
            i = close + 1
            continue
        i += 1
    return "\n".join(groups)
