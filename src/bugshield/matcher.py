"""Rule matcher engine: one source unit in, an ordered list of findings out.

``scan`` is pure. The same ``(text, filename)`` always yields the same findings
in the same order, and "nothing matched" is an empty list, not an error.
"""

from typing import Sequence

from .errors import UndecodableSourceError
from .models import Finding
from .rules import RULES, Rule, SourceContext, language_for

DEFAULT_MAX_LINE_LENGTH = 2000
BINARY_SNIFF_BYTES = 8192


def decode_source(data: bytes | str) -> str:
    """Turn raw unit content into text.

    Raises:
        UndecodableSourceError: content is binary or not valid UTF-8.
    """
    if isinstance(data, str):
        if "\x00" in data:
            raise UndecodableSourceError("Content contains NUL characters")
        return data
    if b"\x00" in data[:BINARY_SNIFF_BYTES]:
        raise UndecodableSourceError("Content appears to be binary")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise UndecodableSourceError(f"Content is not valid UTF-8: {e.reason} at byte {e.start}") from e


def scan(
    text: bytes | str,
    filename: str,
    *,
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
    rules: Sequence[Rule] = RULES,
) -> list[Finding]:
    """Run every applicable rule over one unit.

    Args:
        text: Unit content; bytes are decoded as UTF-8.
        filename: Name or path of the unit; its extension selects the language hint.
        max_line_length: Lines are truncated to this length before matching.
        rules: Rule registry to evaluate, in order.

    Returns:
        Findings without ``id``/``file``, ordered by rule then line.

    Raises:
        UndecodableSourceError: the content cannot be decoded as text.
    """
    source = decode_source(text)
    language = language_for(filename)
    context = SourceContext(filename, language, source, max_line_length)

    findings: list[Finding] = []
    for rule in rules:
        if not rule.applies_to(language):
            continue
        seen_lines: set[int] = set()
        for match in sorted(rule.match(context), key=lambda m: m.line):
            # One finding per rule per line
            if match.line in seen_lines:
                continue
            seen_lines.add(match.line)
            findings.append(rule.build_finding(match, language))
    return findings
