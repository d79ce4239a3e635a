"""
SECURITY DETECTION MODULE: patterns that DETECT unescaped output of variables
into HTML (cross-site scripting sinks) across PHP, JavaScript, Python and
common template languages.
"""

import re
from typing import Iterator

from ..models import Severity
from .common import JS_LANGUAGES, Rule, RuleMatch, SourceContext, snippet

_PHP_ECHO_RE = re.compile(r"(?:\b(?:echo|print)\b|<\?=)\s*[^;]*?\$\w")
_PHP_ESCAPE_RE = re.compile(
    r"\b(?:htmlspecialchars|htmlentities|esc_html|esc_attr|esc_url|strip_tags|intval|floatval|"
    r"json_encode|urlencode|rawurlencode|e)\s*\(|\(int\)"
)

_DOM_SINK_RE = re.compile(
    r"\.(?:innerHTML|outerHTML)\s*\+?=(?!=)\s*(?P<rhs>.+)"
    r"|\bdocument\.write(?:ln)?\s*\(\s*(?P<arg>.+)"
    r"|\.insertAdjacentHTML\s*\([^,]+,\s*(?P<html>.+)"
)
_PLAIN_LITERAL_RE = re.compile(r"""^\s*(["'])[^"'`$]*\1\s*[;)]*\s*$""")
_REACT_HTML_RE = re.compile(r"dangerouslySetInnerHTML\s*=\s*\{\{\s*__html\s*:")
_JS_SANITIZER_RE = re.compile(r"\b(?:DOMPurify\.sanitize|sanitize\w*|escapeHtml|escape|encodeURIComponent|textContent)\b")

# Template constructs that skip auto-escaping
_RAW_TEMPLATE_RE = re.compile(
    r"<%-\s*[\w.]"            # EJS
    r"|\{\{\{\s*[\w.]"        # Handlebars / Mustache
    r"|\{\{[^}]*\|\s*safe\b"  # Jinja / Django
    r"|\{!!\s*\$"             # Blade
    r"|\bv-html\s*="          # Vue
    r"|<%==\s*\w"             # ERB raw
    r"|\.html_safe\b"         # Rails
)

_PY_HTML_RE = re.compile(
    r"\b(?:render_template_string|Markup|mark_safe|HttpResponse|make_response)\s*\(\s*(?:f[\"']|[\"'][^\"']*[\"']\s*(?:%|\+|\.format))"
)
_PY_RETURN_HTML_RE = re.compile(r"""\breturn\s+f["'][^"']*<\w+[^"']*\{""")


def _js_sink(line: str) -> bool:
    if _REACT_HTML_RE.search(line):
        return not _JS_SANITIZER_RE.search(line)
    match = _DOM_SINK_RE.search(line)
    if not match:
        return False
    value = match.group("rhs") or match.group("arg") or match.group("html") or ""
    if _PLAIN_LITERAL_RE.match(value) or _JS_SANITIZER_RE.search(value):
        return False
    return True


def match_xss(ctx: SourceContext) -> Iterator[RuleMatch]:
    language = ctx.language
    for lineno, line in ctx.code_lines():
        if language in (None, "php") and _PHP_ECHO_RE.search(line):
            if not _PHP_ESCAPE_RE.search(line):
                yield RuleMatch(lineno, snippet(line), {"sink": "echo"})
                continue
        if language in JS_LANGUAGES | {None, "html"} and _js_sink(line):
            yield RuleMatch(lineno, snippet(line), {"sink": "DOM"})
            continue
        if language in (None, "python") and (_PY_HTML_RE.search(line) or _PY_RETURN_HTML_RE.search(line)):
            yield RuleMatch(lineno, snippet(line), {"sink": "HTML response"})
            continue
        if _RAW_TEMPLATE_RE.search(line):
            yield RuleMatch(lineno, snippet(line), {"sink": "raw template output"})


XSS = Rule(
    name="unescaped_html_output",
    type="Cross-Site Scripting (XSS)",
    severity=Severity.high,
    match=match_xss,
    description="Variable written into HTML without output encoding ({{sink}})",
    remediation=(
        "Encode output for the HTML context it lands in (htmlspecialchars, textContent, "
        "auto-escaping templates) and deploy a Content Security Policy."
    ),
    fixed_code={
        "php": "echo htmlspecialchars($name, ENT_QUOTES, 'UTF-8');",
        "javascript": "element.textContent = userInput;",
        "python": "return render_template('greeting.html', name=name)",
        "html": "<%= userInput %>",
        "default": "Escape the value for its HTML context before writing it to the page.",
    },
)
