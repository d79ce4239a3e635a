"""
SECURITY DETECTION MODULE: authentication and request-forgery checks.

- Password fields assigned without a hashing call
- State-changing request handlers with no anti-forgery token handling nearby
"""

import re
from typing import Iterator

from ..models import Severity
from .common import MARKUP_LANGUAGES, SERVER_LANGUAGES, Rule, RuleMatch, SourceContext, snippet

# --- Plaintext password storage ---------------------------------------------

_PASSWORD_FIELD_RE = re.compile(
    r"""(?:\.|->|\[\s*["']|[{(,]\s*["']?)(?P<field>\w*pass(?:word|wd)\w*)["']?\s*\]?\s*"""
    r"""(?:=(?![=>])|:(?!:))\s*(?P<rhs>.+)""",
    re.IGNORECASE,
)
_HASHING_RE = re.compile(
    r"hash|bcrypt|argon2|scrypt|pbkdf2|crypt\s*\(|digest|encrypt|make_password|sha\d+|md5",
    re.IGNORECASE,
)
_NON_VALUE_RE = re.compile(
    r"""^(?:["'`]|None\b|null\b|nil\b|undefined\b|true\b|false\b|True\b|False\b|\d"""
    r"""|str\b|string\b|String\b|bytes\b|SecretStr\b|Optional\[|Mapped\[|Column\(|models\.|fields\.|\{|\[|\))"""
)


def match_plaintext_password(ctx: SourceContext) -> Iterator[RuleMatch]:
    for lineno, line in ctx.code_lines():
        match = _PASSWORD_FIELD_RE.search(line)
        if not match:
            continue
        rhs = match.group("rhs").strip().rstrip(";,)} ")
        # Literals are the secret rule's concern; types and schema declarations are not values
        if not rhs or _NON_VALUE_RE.match(rhs) or _HASHING_RE.search(rhs):
            continue
        yield RuleMatch(lineno, snippet(line), {"field": match.group("field")})


INSECURE_AUTHENTICATION = Rule(
    name="plaintext_password_field",
    type="Insecure Authentication",
    severity=Severity.medium,
    match=match_plaintext_password,
    languages=SERVER_LANGUAGES,
    description="Password field '{{field}}' is assigned without hashing",
    remediation=(
        "Hash passwords with a slow, salted algorithm (bcrypt, argon2, scrypt) before storing "
        "them, and compare with the library's constant-time verify function."
    ),
    fixed_code={
        "python": "user.{{field}} = generate_password_hash(password)",
        "javascript": "user.{{field}} = await bcrypt.hash(password, 12);",
        "php": "$user->{{field}} = password_hash($password, PASSWORD_DEFAULT);",
        "ruby": "user.{{field}} = BCrypt::Password.create(password)",
        "java": "user.set{{field}}(passwordEncoder.encode(password));",
        "default": "Store only a salted hash of the password, never the plaintext value.",
    },
)


# --- CSRF ---------------------------------------------------------------------

_STATE_CHANGING_HANDLER_RES: dict[str, re.Pattern] = {
    "javascript": re.compile(r"""\b(?:app|router|server|api)\.(?:post|put|patch|delete)\s*\(\s*["'`]""", re.IGNORECASE),
    "python": re.compile(
        r"""@\w+\.(?:post|put|patch|delete)\s*\("""
        r"""|@\w+\.route\s*\([^)]*methods\s*=\s*[\[(][^\])]*["'](?:POST|PUT|PATCH|DELETE)["']""",
        re.IGNORECASE,
    ),
    "php": re.compile(r"""\$_SERVER\s*\[\s*["']REQUEST_METHOD["']\s*\]\s*===?\s*["']POST["']""", re.IGNORECASE),
    "ruby": re.compile(r"""^\s*(?:post|put|patch|delete)\s+["']/"""),
}
_STATE_CHANGING_HANDLER_RES["typescript"] = _STATE_CHANGING_HANDLER_RES["javascript"]

_POST_FORM_RE = re.compile(r"""<form\b[^>]*\bmethod\s*=\s*["']?post""", re.IGNORECASE)

# Token handling close to the handler or form
_CSRF_TOKEN_RE = re.compile(
    r"csrf|xsrf|_token\b|authenticity_token|anti_?forgery|RequestVerificationToken|samesite|wp_nonce",
    re.IGNORECASE,
)
# Protection registered once for the whole file
_CSRF_GLOBAL_RE = re.compile(
    r"\bcsurf\b|CSRFProtect\s*\(|CsrfViewMiddleware|protect_from_forgery|csrf_protect|lusca\.csrf",
)
_CSRF_EXEMPT_RE = re.compile(r"csrf_exempt|skip_forgery_protection|skip_before_action\s+:verify_authenticity_token")

CSRF_WINDOW_BEFORE = 3
CSRF_WINDOW_AFTER = 8


def match_missing_csrf(ctx: SourceContext) -> Iterator[RuleMatch]:
    if _CSRF_GLOBAL_RE.search(ctx.text):
        return
    language = ctx.language
    if language is None:
        handler_res = list(_STATE_CHANGING_HANDLER_RES.values())
    else:
        handler_res = [_STATE_CHANGING_HANDLER_RES[language]] if language in _STATE_CHANGING_HANDLER_RES else []
    check_forms = language is None or language in MARKUP_LANGUAGES

    for lineno, line in ctx.code_lines():
        is_handler = any(pattern.search(line) for pattern in handler_res)
        if not is_handler and not (check_forms and _POST_FORM_RE.search(line)):
            continue
        window = ctx.window(lineno, CSRF_WINDOW_BEFORE, CSRF_WINDOW_AFTER)
        if _CSRF_TOKEN_RE.search(window) and not _CSRF_EXEMPT_RE.search(window):
            continue
        yield RuleMatch(lineno, snippet(line))


MISSING_CSRF_PROTECTION = Rule(
    name="state_change_without_csrf_token",
    type="CSRF",
    severity=Severity.medium,
    match=match_missing_csrf,
    description="State-changing request handler without anti-forgery token handling",
    remediation=(
        "Require a per-session anti-forgery token on every state-changing request (framework "
        "CSRF middleware or a hidden form token) and set session cookies with SameSite."
    ),
    fixed_code={
        "javascript": "app.post('/transfer', csrfProtection, (req, res) => { /* ... */ });",
        "python": "csrf = CSRFProtect(app)",
        "php": "if (!hash_equals($_SESSION['csrf_token'], $_POST['csrf_token'] ?? '')) { http_response_code(403); exit; }",
        "ruby": "protect_from_forgery with: :exception",
        "html": '<input type="hidden" name="csrf_token" value="<%= csrfToken %>">',
        "default": "Validate an anti-forgery token on every state-changing request.",
    },
)
