"""Shared building blocks for detection rules.

A rule is a static record: what it reports (type, severity, templated text)
plus a match function that walks a ``SourceContext`` and yields ``RuleMatch``
hits. Adding detection capability means adding a record to the registry in
``rules/__init__.py``.
"""

import math
import re
from collections import Counter
from functools import cached_property
from pathlib import PurePosixPath
from typing import Callable, Iterator, NamedTuple

from ..models import Finding, Severity

MAX_SNIPPET_LENGTH = 200

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".php": "php",
    ".phtml": "php",
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".html": "html",
    ".htm": "html",
    ".ejs": "html",
    ".hbs": "html",
    ".vue": "html",
    ".rb": "ruby",
    ".erb": "ruby",
    ".java": "java",
    ".c": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".css": "css",
    ".scss": "css",
    ".sass": "css",
    ".less": "css",
    ".sql": "sql",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".xml": "xml",
    ".md": "markdown",
}

JS_LANGUAGES = frozenset({"javascript", "typescript"})
SERVER_LANGUAGES = frozenset({"php", "python", "javascript", "typescript", "ruby", "java", "csharp", "go"})
MARKUP_LANGUAGES = frozenset({"html", "php", "ruby"})

# Falls back along this chain when a rule has no template for a language
TEMPLATE_FALLBACK = {"typescript": "javascript"}

COMMENT_PREFIXES = ("#", "//", "/*", "*", "<!--", "--")

# Request data that should be treated as attacker-controlled
USER_INPUT_RE = re.compile(
    r"\$_(?:GET|POST|REQUEST|COOKIE|FILES)\b"
    r"|\$request->(?:input|get|query|post)\b"
    r"|\breq(?:uest)?\.(?:body|query|params|args|form|values|cookies|files|GET|POST|get_json|json|data|headers)\b"
    r"|\bparams\[\s*:?\w"
    r"|\bgetParameter\s*\("
    r"|\bsys\.argv\b"
    r"|(?<![\w.])input\s*\("
    r"|\blocation\.(?:search|hash)\b"
)

_ASSIGNMENT_RE = re.compile(
    r"^\s*(?:(?:const|let|var|my|final|val|String|auto)\s+)?"
    r"(?P<lhs>\$?[A-Za-z_]\w*|\{[^}]*\})\s*(?::\s*[\w\[\]]+\s*)?=(?![=>])\s*(?P<rhs>.*)$"
)

TAINT_LOOKBACK = 10

# Only CR, LF and CRLF end a line, unlike str.splitlines (\f, \v, U+2028, ...)
_LINE_END_RE = re.compile(r"\r\n|\r|\n")


def split_lines(text: str) -> list[str]:
    """Split on real line endings, without a trailing empty line."""
    lines = _LINE_END_RE.split(text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def language_for(filename: str) -> str | None:
    """Return the language hint for a filename, or None if unknown."""
    suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    return LANGUAGE_BY_EXTENSION.get(suffix)


def is_comment(stripped: str) -> bool:
    return stripped.startswith(COMMENT_PREFIXES)


def shannon_entropy(value: str) -> float:
    """Bits of entropy per character."""
    if not value:
        return 0.0
    length = len(value)
    return -sum((n / length) * math.log2(n / length) for n in Counter(value).values())


def redact_secret(value: str) -> str:
    """Redact a secret value, showing only first 4 and last 4 chars."""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


def render_template(template: str, params: dict[str, str]) -> str:
    """Fill ``{{name}}`` placeholders; unknown names render empty."""
    return re.sub(r"\{\{(\w+)\}\}", lambda m: params.get(m.group(1), ""), template)


def _names_from_lhs(lhs: str) -> set[str]:
    if not lhs.startswith("{"):
        return {lhs}
    names = set()
    for part in lhs.strip("{} ").split(","):
        # `{ file: name }` binds `name`
        name = part.split(":")[-1].split("=")[0].strip()
        if re.fullmatch(r"[A-Za-z_$]\w*", name):
            names.add(name)
    return names


class SourceContext:
    """One source unit prepared for rule evaluation."""

    def __init__(self, filename: str, language: str | None, text: str, max_line_length: int):
        self.filename = filename
        self.language = language
        self.text = text
        # Long lines (minified bundles) are cut to keep regex cost bounded
        self.lines: tuple[str, ...] = tuple(
            line[:max_line_length] for line in split_lines(text)
        )

    def code_lines(self) -> Iterator[tuple[int, str]]:
        """Yield (1-based line number, line) for lines that are not comments."""
        for lineno, line in enumerate(self.lines, start=1):
            stripped = line.strip()
            if stripped and not is_comment(stripped):
                yield lineno, line

    def window(self, lineno: int, before: int, after: int) -> str:
        start = max(0, lineno - 1 - before)
        return "\n".join(self.lines[start:lineno + after])

    @cached_property
    def tainted_assignments(self) -> dict[int, set[str]]:
        """Names assigned directly from request data, keyed by line number."""
        tainted: dict[int, set[str]] = {}
        for lineno, line in self.code_lines():
            match = _ASSIGNMENT_RE.match(line)
            if match and USER_INPUT_RE.search(match.group("rhs")):
                tainted[lineno] = _names_from_lhs(match.group("lhs"))
        return tainted

    def uses_user_input(self, lineno: int, line: str) -> bool:
        """True if the line reads request data directly or via a recently tainted name."""
        if USER_INPUT_RE.search(line):
            return True
        for source_line in range(max(1, lineno - TAINT_LOOKBACK), lineno):
            for name in self.tainted_assignments.get(source_line, ()):
                if re.search(rf"(?<![\w$]){re.escape(name)}\b", line):
                    return True
        return False


class RuleMatch(NamedTuple):
    """A hit reported by a rule's match function."""

    line: int
    snippet: str
    params: dict[str, str] | None = None


MatchFn = Callable[[SourceContext], Iterator[RuleMatch]]


class Rule(NamedTuple):
    """A detection rule record."""

    name: str
    type: str
    severity: Severity
    match: MatchFn
    description: str
    remediation: str
    fixed_code: dict[str, str]
    languages: frozenset[str] | None = None

    def applies_to(self, language: str | None) -> bool:
        # Without a hint there is nothing to suppress on
        if self.languages is None or language is None:
            return True
        return language in self.languages

    def build_finding(self, match: RuleMatch, language: str | None) -> Finding:
        params = dict(match.params or {})
        params.setdefault("language", language or "source")
        return Finding(
            type=self.type,
            severity=self.severity,
            line=match.line,
            description=render_template(self.description, params),
            vulnerable_snippet=match.snippet,
            remediation=render_template(self.remediation, params),
            fixed_snippet=render_template(self._fixed_template(language), params),
        )

    def _fixed_template(self, language: str | None) -> str:
        while language is not None:
            if language in self.fixed_code:
                return self.fixed_code[language]
            language = TEMPLATE_FALLBACK.get(language)
        return self.fixed_code["default"]


def snippet(line: str) -> str:
    return line.strip()[:MAX_SNIPPET_LENGTH]
