"""
Tokenizers for the three text formats the checker reads.

Unified diff (git and svn flavours):
    file   := header hunk*
    header := '--- ' old-path ['\\t' annotation] NL '+++ ' new-path ['\\t' annotation] NL
    hunk   := '@@ -' start [',' count] ' +' start [',' count] ' @@' ... NL body-line{counts}
  Only the new-path of each header is kept. Hunk bodies are consumed by line
  count, so added lines that happen to start with '++ ' are never mistaken
  for headers.

Puppet manifests:
    class-header := 'class' NAME ['(' ... ')'] ['inherits' NAME] '{'
    node-header  := 'node' matcher (',' matcher)* ['inherits' matcher] '{'
    matcher      := STRING | REGEX | NAME | 'default'
  Comments ('#' and '/* */') and quoted strings are skipped by the lexer, so
  headers inside them are ignored.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

NULL_DEVICE = "/dev/null"

CLASS_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(::[a-z][a-z0-9_]*)*$")

_HUNK_HEADER = re.compile(r"^@@ -\d+(?:,(\d+))? \+\d+(?:,(\d+))? @@")


# =============================================================================
# Unified diff
# =============================================================================

@dataclass(frozen=True)
class DiffFile:
    """One file header pair from a unified diff."""
    old_path: str
    new_path: str

    @property
    def is_deletion(self) -> bool:
        return self.new_path == NULL_DEVICE


def _header_path(raw: str, prefix: str) -> str:
    # svn appends "\t(revision 12)" / "\t(working copy)", git may append a tab too
    path = raw.split("\t", 1)[0].rstrip()
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1].encode("utf-8").decode("unicode_escape").encode("latin-1").decode("utf-8")
    if path != NULL_DEVICE and prefix and path.startswith(prefix):
        path = path[len(prefix):]
    return path


def parse_diff(text: str, prefix: str = "") -> List[DiffFile]:
    """
    Parse unified diff output into its file headers.

    Args:
        text: Output of `git diff` / `svn diff`
        prefix: VCS path prefix to strip from the paths ("b/" for git's new side)

    Returns:
        DiffFile entries in the order they appear
    """
    files: List[DiffFile] = []
    lines = text.splitlines()
    old_remaining = new_remaining = 0
    pending_old: Optional[str] = None
    old_prefix = "a/" if prefix == "b/" else prefix

    for line in lines:
        if old_remaining > 0 or new_remaining > 0:
            marker = line[:1]
            if marker == "\\":
                continue
            if marker == "-":
                old_remaining -= 1
            elif marker == "+":
                new_remaining -= 1
            else:
                old_remaining -= 1
                new_remaining -= 1
            continue

        if line.startswith("--- "):
            pending_old = _header_path(line[4:], old_prefix)
        elif line.startswith("+++ ") and pending_old is not None:
            files.append(DiffFile(old_path=pending_old, new_path=_header_path(line[4:], prefix)))
            pending_old = None
        else:
            match = _HUNK_HEADER.match(line)
            if match:
                old_remaining = int(match.group(1)) if match.group(1) is not None else 1
                new_remaining = int(match.group(2)) if match.group(2) is not None else 1

    return files


def changed_paths(text: str, prefix: str = "") -> List[str]:
    """Sorted, de-duplicated new-side paths of a diff, deletions excluded."""
    return sorted({f.new_path for f in parse_diff(text, prefix) if not f.is_deletion})


# =============================================================================
# Puppet manifest lexer
# =============================================================================

class TokenKind(Enum):
    NAME = "name"
    VARIABLE = "variable"
    STRING = "string"
    REGEX = "regex"
    PUNCT = "punct"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int


_NAME = re.compile(r"(?:::)?[A-Za-z0-9_][A-Za-z0-9_\-.]*(?:::[A-Za-z0-9_][A-Za-z0-9_\-.]*)*")
_VARIABLE = re.compile(r"\$(?:::)?[A-Za-z0-9_]+(?:::[A-Za-z0-9_]+)*")
_TWO_CHAR_PUNCT = {"=~", "!~", "=>", "->", "~>", "<-", "<~", "==", "!=", "+>", "<<", ">>", "<=", ">="}

# A '/' after one of these starts a regex literal rather than a division
_REGEX_PRECEDERS = {None, "node", ",", "=~", "!~", "(", "[", "{", "}", ":", ";", "case", "if", "elsif", "and", "or"}


class ManifestSyntaxError(ValueError):
    """Raised for an unterminated string, comment or regex literal."""

    def __init__(self, message: str, line: int):
        super().__init__(f"line {line}: {message}")
        self.line = line


def _scan_delimited(text: str, start: int, delimiter: str) -> Optional[int]:
    """Index just past the closing delimiter, honouring backslash escapes."""
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == delimiter:
            return i + 1
        if delimiter == "/" and ch == "\n":
            return None
        i += 1
    return None


def tokenize(text: str) -> Iterator[Token]:
    """Yield significant tokens of a manifest, skipping comments and whitespace."""
    i = 0
    line = 1
    previous: Optional[str] = None
    length = len(text)

    while i < length:
        ch = text[i]

        if ch == "\n":
            line += 1
            i += 1
            continue
        if ch.isspace():
            i += 1
            continue
        if ch == "#":
            end = text.find("\n", i)
            i = length if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise ManifestSyntaxError("unterminated comment", line)
            line += text.count("\n", i, end)
            i = end + 2
            continue

        if ch in ("'", '"'):
            end = _scan_delimited(text, i, ch)
            if end is None:
                raise ManifestSyntaxError("unterminated string", line)
            token = Token(TokenKind.STRING, text[i + 1:end - 1], line)
            line += text.count("\n", i, end)
            i = end
        elif ch == "/" and previous in _REGEX_PRECEDERS:
            end = _scan_delimited(text, i, "/")
            if end is None:
                raise ManifestSyntaxError("unterminated regex", line)
            token = Token(TokenKind.REGEX, text[i + 1:end - 1], line)
            i = end
        elif ch == "$":
            match = _VARIABLE.match(text, i)
            if match:
                token = Token(TokenKind.VARIABLE, match.group(0), line)
                i = match.end()
            else:
                token = Token(TokenKind.PUNCT, ch, line)
                i += 1
        else:
            match = _NAME.match(text, i)
            if match:
                token = Token(TokenKind.NAME, match.group(0), line)
                i = match.end()
            elif text[i:i + 2] in _TWO_CHAR_PUNCT:
                token = Token(TokenKind.PUNCT, text[i:i + 2], line)
                i += 2
            else:
                token = Token(TokenKind.PUNCT, ch, line)
                i += 1

        previous = token.value if token.kind in (TokenKind.NAME, TokenKind.PUNCT) else token.kind.value
        yield token


# =============================================================================
# Class and node headers
# =============================================================================

@dataclass(frozen=True)
class ClassDefinition:
    name: str
    line: int


@dataclass(frozen=True)
class NodeMatcher:
    kind: str  # name, string, regex, default
    value: str


@dataclass(frozen=True)
class NodeDefinition:
    matchers: tuple
    line: int

    @property
    def regexes(self) -> List[str]:
        return [m.value for m in self.matchers if m.kind == "regex"]


def normalize_class_name(name: str) -> str:
    return name[2:] if name.startswith("::") else name


def is_valid_class_name(name: str) -> bool:
    return bool(CLASS_NAME_PATTERN.match(normalize_class_name(name)))


def parse_class_definitions(text: str) -> List[ClassDefinition]:
    """
    Find `class <name>` definition headers.

    Resource-like declarations (`class { 'foo': }`) are not definitions and
    are skipped.
    """
    definitions = []
    tokens = list(tokenize(text))
    for index, token in enumerate(tokens[:-1]):
        if token.kind is not TokenKind.NAME or token.value != "class":
            continue
        following = tokens[index + 1]
        if following.kind is TokenKind.NAME:
            definitions.append(ClassDefinition(normalize_class_name(following.value), token.line))
    return definitions


def _matcher(token: Token) -> Optional[NodeMatcher]:
    if token.kind is TokenKind.REGEX:
        return NodeMatcher("regex", token.value)
    if token.kind is TokenKind.STRING:
        return NodeMatcher("string", token.value)
    if token.kind is TokenKind.NAME:
        if token.value == "default":
            return NodeMatcher("default", token.value)
        return NodeMatcher("name", token.value)
    return None


def parse_node_definitions(text: str) -> List[NodeDefinition]:
    """Find `node` headers and the matchers each one lists."""
    definitions = []
    tokens = list(tokenize(text))
    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1
        if token.kind is not TokenKind.NAME or token.value != "node":
            continue

        matchers = []
        while index < len(tokens):
            matcher = _matcher(tokens[index])
            if matcher is None or (matcher.kind == "name" and matcher.value == "inherits"):
                break
            matchers.append(matcher)
            index += 1
            if index < len(tokens) and tokens[index].value == ",":
                index += 1
                continue
            break

        if matchers:
            definitions.append(NodeDefinition(tuple(matchers), token.line))
    return definitions
