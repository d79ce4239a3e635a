"""Detect credentials assigned as string literals."""

import re
from typing import Iterator

from ..models import Severity
from .common import Rule, RuleMatch, SourceContext, redact_secret, shannon_entropy, snippet

# Name is always a whole identifier so each line is matched in linear time
_SECRET_ASSIGN_RE = re.compile(
    r"""(?<![\w$.\-])(?P<name>[A-Za-z_$][\w$.\-]*)"""
    r"""["']?\s*(?::=|=>|=(?!=)|:)\s*(?P<quote>["'`])(?P<value>[^"'`\s]{8,})(?P=quote)"""
)
_SECRET_NAME_RE = re.compile(r"key|secret|token|password|passwd|pwd|credential", re.IGNORECASE)
_LITERAL_ASSIGN_RE = re.compile(r"""[:=>]\s*["'`]""")

# Values that are clearly not real credentials
PLACEHOLDER_HINTS = (
    "your_", "your-", "example", "placeholder", "changeme", "change_me", "xxxx",
    "dummy", "<", ">", "${", "{{", "process.env", "os.environ", "getenv", "redacted",
)
_IDENTIFIER_WORDS_RE = re.compile(r"^[a-z]+(?:[_\-.][a-z]+)+$")

MIN_ENTROPY = 3.0


def _character_classes(value: str) -> int:
    return sum((
        any(c.islower() for c in value),
        any(c.isupper() for c in value),
        any(c.isdigit() for c in value),
        any(not c.isalnum() for c in value),
    ))


def looks_like_secret(value: str) -> bool:
    """Heuristic: high-entropy, mixed-character literal that is not a placeholder."""
    lowered = value.lower()
    if any(hint in lowered for hint in PLACEHOLDER_HINTS):
        return False
    if "://" in value and "@" not in value:
        return False
    if _IDENTIFIER_WORDS_RE.match(value):
        return False
    return _character_classes(value) >= 2 and shannon_entropy(value) >= MIN_ENTROPY


def _env_name(name: str) -> str:
    base = name.lstrip("$").split(".")[-1].split("->")[-1]
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", base).replace("-", "_").upper()


def match_hardcoded_secret(ctx: SourceContext) -> Iterator[RuleMatch]:
    for lineno, line in ctx.code_lines():
        if not _LITERAL_ASSIGN_RE.search(line):
            continue
        for match in _SECRET_ASSIGN_RE.finditer(line):
            name = match.group("name")
            value = match.group("value")
            if not _SECRET_NAME_RE.search(name) or not looks_like_secret(value):
                continue
            redacted = snippet(line).replace(value, redact_secret(value))
            yield RuleMatch(lineno, redacted, {"name": name, "env_name": _env_name(name)})
            break


HARDCODED_SECRET = Rule(
    name="literal_credential",
    type="Hardcoded Secret",
    severity=Severity.high,
    match=match_hardcoded_secret,
    description="Credential-like literal assigned to '{{name}}'",
    remediation=(
        "Remove the literal from source control, rotate the credential, and load it at runtime "
        "from an environment variable or a secrets manager."
    ),
    fixed_code={
        "javascript": "const {{name}} = process.env.{{env_name}};",
        "python": '{{name}} = os.environ["{{env_name}}"]',
        "php": "{{name}} = getenv('{{env_name}}');",
        "ruby": "{{name}} = ENV.fetch('{{env_name}}')",
        "java": 'String {{name}} = System.getenv("{{env_name}}");',
        "json": '"{{name}}": "${{{env_name}}}"',
        "yaml": "{{name}}: ${{{env_name}}}",
        "default": "Read {{name}} from the {{env_name}} environment variable instead of hardcoding it.",
    },
)
