"""Detect request data flowing into file-system paths."""

import re
from typing import Iterator

from ..models import Severity
from .common import SERVER_LANGUAGES, Rule, RuleMatch, SourceContext, snippet

_FILE_ACCESS_RE = re.compile(
    r"(?<![\w.])open\s*\("
    r"|\b(?:fopen|file_get_contents|file_put_contents|readfile|unlink|include|include_once|require_once)\b"
    r"|\bfs\.\w+\s*\("
    r"|\b(?:readFile|readFileSync|writeFile|writeFileSync|createReadStream|createWriteStream)\s*\("
    r"|\b(?:send_file|send_from_directory|FileResponse)\s*\("
    r"|\.(?:sendFile|download)\s*\("
    r"|\bFile\.(?:read|open|new|readlines)\b"
    r"|\bnew\s+(?:File|FileInputStream|FileReader)\s*\("
    r"|\bFiles\.(?:readAllBytes|readString|newInputStream)\s*\("
    r"|\bPath\s*\(.*\)\.(?:read_text|read_bytes|open)\b"
)

_PATH_SANITIZER_RE = re.compile(
    r"\b(?:basename|realpath|secure_filename|normpath|abspath|normalize|sanitize\w*|safe_join|"
    r"is_relative_to|startsWith|getCanonicalPath)\b"
)


def match_path_traversal(ctx: SourceContext) -> Iterator[RuleMatch]:
    for lineno, line in ctx.code_lines():
        if not _FILE_ACCESS_RE.search(line):
            continue
        if _PATH_SANITIZER_RE.search(line):
            continue
        if ctx.uses_user_input(lineno, line):
            yield RuleMatch(lineno, snippet(line))


PATH_TRAVERSAL = Rule(
    name="request_path_file_access",
    type="Path Traversal",
    severity=Severity.low,
    match=match_path_traversal,
    languages=SERVER_LANGUAGES,
    description="File accessed through a path built from request data without normalization",
    remediation=(
        "Reduce user input to a bare file name (basename / secure_filename), resolve the final "
        "path and verify it stays inside the intended base directory before opening it."
    ),
    fixed_code={
        "python": (
            "path = (BASE_DIR / secure_filename(name)).resolve()\n"
            "if not path.is_relative_to(BASE_DIR):\n    abort(400)"
        ),
        "javascript": (
            "const target = path.resolve(BASE_DIR, path.basename(req.query.file));\n"
            "if (!target.startsWith(BASE_DIR)) return res.status(400).end();"
        ),
        "php": "$file = basename($_GET['file']);\n$content = file_get_contents(__DIR__ . '/uploads/' . $file);",
        "java": "Path target = base.resolve(name).normalize();\nif (!target.startsWith(base)) throw new SecurityException();",
        "default": "Normalize the path and confirm it stays within the allowed directory.",
    },
)
