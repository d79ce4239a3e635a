"""
SECURITY DETECTION MODULE: regex patterns used to DETECT injection flaws
(SQL, OS command, dynamic code evaluation) in scanned source. The patterns are
read-only static analysis; nothing here executes what it scans for.
"""

import re
from typing import Iterator

from ..models import Severity
from .common import SERVER_LANGUAGES, Rule, RuleMatch, SourceContext, snippet

_SQL_VERB = r"(?:SELECT|INSERT\s+INTO|UPDATE|DELETE\s+FROM|REPLACE\s+INTO)\b"

# A string literal that opens with a SQL statement
_SQL_LITERAL_RE = re.compile(rf"""[fFbBrRuU]?["'`]\s*{_SQL_VERB}""", re.IGNORECASE)
_SQL_CLAUSE_RE = re.compile(r"\b(?:FROM|WHERE|SET|VALUES|INTO)\b", re.IGNORECASE)

# "..." . $x  /  "..." + x  /  x + "..."
_CONCAT_RE = re.compile(r"""["'`]\s*(?:\.|\+)\s*[^\s"'`;]|[\w\])]\s*(?:\.|\+)\s*["'`]""")

_INTERPOLATION_RES = [
    # Python f-string
    re.compile(rf"""\b[fF][rR]?(?:"\s*{_SQL_VERB}[^"]*|'\s*{_SQL_VERB}[^']*)\{{""", re.IGNORECASE),
    # JS template literal
    re.compile(rf"""`\s*{_SQL_VERB}[^`]*\$\{{""", re.IGNORECASE),
    # printf-style and str.format()
    re.compile(rf"""(?:"\s*{_SQL_VERB}[^"]*%[sd][^"]*"|'\s*{_SQL_VERB}[^']*%[sd][^']*')\s*%\s*[\w(]""", re.IGNORECASE),
    re.compile(
        rf"""(?:"\s*{_SQL_VERB}[^"]*\{{\w*\}}[^"]*"|'\s*{_SQL_VERB}[^']*\{{\w*\}}[^']*')\s*\.format\s*\(""",
        re.IGNORECASE,
    ),
]

# PHP/Ruby double-quoted strings expand variables in place
_PHP_INTERPOLATION_RE = re.compile(rf""""\s*{_SQL_VERB}[^"]*(?:\$\w|\{{\$)""", re.IGNORECASE)
_RUBY_INTERPOLATION_RE = re.compile(rf""""\s*{_SQL_VERB}[^"]*#\{{""", re.IGNORECASE)

_SQL_ASSIGN_RE = re.compile(rf"""(?P<var>\$?[A-Za-z_]\w*)\s*=\s*[fFbBrRuU]?["'`]\s*{_SQL_VERB}""", re.IGNORECASE)
SQL_APPEND_WINDOW = 3


def _sql_interpolated(ctx: SourceContext, line: str) -> bool:
    if any(pattern.search(line) for pattern in _INTERPOLATION_RES):
        return True
    if ctx.language == "php" and _PHP_INTERPOLATION_RE.search(line):
        return True
    return ctx.language == "ruby" and bool(_RUBY_INTERPOLATION_RE.search(line))


def match_sql_injection(ctx: SourceContext) -> Iterator[RuleMatch]:
    for lineno, line in ctx.code_lines():
        if _SQL_LITERAL_RE.search(line) and _SQL_CLAUSE_RE.search(line):
            concatenated = _CONCAT_RE.search(line) and ctx.uses_user_input(lineno, line)
            if concatenated or _sql_interpolated(ctx, line):
                yield RuleMatch(lineno, snippet(line))
                continue

        # $sql = "SELECT ..."; followed by $sql .= $_GET[...] a few lines later
        assign = _SQL_ASSIGN_RE.search(line)
        if not assign:
            continue
        append_re = re.compile(rf"{re.escape(assign.group('var'))}\s*(?:\.=|\+=)")
        for offset in range(1, SQL_APPEND_WINDOW + 1):
            if lineno + offset > len(ctx.lines):
                break
            later = ctx.lines[lineno + offset - 1]
            if append_re.search(later) and ctx.uses_user_input(lineno + offset, later):
                yield RuleMatch(lineno + offset, snippet(later))
                break


SQL_INJECTION = Rule(
    name="sql_string_building",
    type="SQL Injection",
    severity=Severity.critical,
    match=match_sql_injection,
    languages=SERVER_LANGUAGES,
    description="SQL statement built by concatenating or interpolating request data into the query string",
    remediation=(
        "Use parameterized queries or prepared statements and pass request values as bound "
        "parameters. Never build SQL text from user input."
    ),
    fixed_code={
        "php": '$stmt = $pdo->prepare("SELECT * FROM users WHERE u = ?");\n$stmt->execute([$_POST[\'u\']]);',
        "python": 'cursor.execute("SELECT * FROM users WHERE u = %s", (username,))',
        "javascript": "db.query('SELECT * FROM users WHERE u = ?', [req.body.u]);",
        "ruby": 'User.where("u = ?", params[:u])',
        "java": 'PreparedStatement stmt = conn.prepareStatement("SELECT * FROM users WHERE u = ?");\nstmt.setString(1, username);',
        "default": "Use a prepared statement with bound parameters instead of string building.",
    },
)


# --- OS command execution ---------------------------------------------------

_COMMAND_CALL_RES: dict[str, re.Pattern] = {
    "python": re.compile(r"\b(?:os\.(?:system|popen)|subprocess\.(?:call|run|Popen|check_output|check_call)|commands\.getoutput)\s*\("),
    "php": re.compile(r"(?<![\w>:$])(?:exec|system|shell_exec|passthru|popen|proc_open)\s*\(|`[^`]*\$_(?:GET|POST|REQUEST)"),
    "javascript": re.compile(r"(?<![\w.])(?:exec|execSync|spawn|spawnSync)\s*\(|\bchild_process\.\w+\s*\("),
    "ruby": re.compile(r"(?<![\w.])(?:system|exec|spawn)\s*\(|`[^`]*#\{|%x\("),
    "java": re.compile(r"Runtime\.getRuntime\(\)\.exec\s*\(|new\s+ProcessBuilder\s*\("),
}
_COMMAND_CALL_RES["typescript"] = _COMMAND_CALL_RES["javascript"]

_SHELL_TRUE_RE = re.compile(r"shell\s*=\s*True")
_DYNAMIC_STRING_RE = re.compile(r"""\b[fF]["']|["']\s*\+|\+\s*["']|%\s*\(|\.format\s*\(""")


def match_command_injection(ctx: SourceContext) -> Iterator[RuleMatch]:
    pattern = _COMMAND_CALL_RES.get(ctx.language or "")
    patterns = [pattern] if pattern else list(_COMMAND_CALL_RES.values())
    for lineno, line in ctx.code_lines():
        if not any(p.search(line) for p in patterns):
            continue
        shell_string = _SHELL_TRUE_RE.search(line) and _DYNAMIC_STRING_RE.search(line)
        if ctx.uses_user_input(lineno, line) or shell_string:
            yield RuleMatch(lineno, snippet(line))


COMMAND_INJECTION = Rule(
    name="os_command_with_input",
    type="Command Injection",
    severity=Severity.critical,
    match=match_command_injection,
    languages=SERVER_LANGUAGES,
    description="Operating system command built from request data or run through a shell with a dynamic string",
    remediation=(
        "Avoid invoking a shell. Call the program directly with an argument list and validate "
        "every user-supplied argument against an allow-list."
    ),
    fixed_code={
        "python": 'subprocess.run(["convert", safe_name, "out.png"], check=True)',
        "php": "$output = shell_exec('convert ' . escapeshellarg($safeName) . ' out.png');",
        "javascript": "execFile('convert', [safeName, 'out.png'], callback);",
        "ruby": 'system("convert", safe_name, "out.png")',
        "java": 'new ProcessBuilder("convert", safeName, "out.png").start();',
        "default": "Run the program without a shell and pass arguments as a list.",
    },
)


# --- Dynamic code evaluation ------------------------------------------------

_EVAL_RE = re.compile(
    r"(?<![\w.])eval\s*\("
    r"|\bnew\s+Function\s*\("
    r"|\bset(?:Timeout|Interval)\s*\(\s*[\"'`]"
)

# exec() is a shell call outside Python and is reported as command injection there
_LANGUAGE_EVAL_RES: dict[str, re.Pattern] = {
    "python": re.compile(r"(?<![\w.])exec\s*\("),
    "php": re.compile(r"(?<![\w>:$])(?:assert|create_function)\s*\("),
}


def match_code_injection(ctx: SourceContext) -> Iterator[RuleMatch]:
    extra = _LANGUAGE_EVAL_RES.get(ctx.language or "")
    for lineno, line in ctx.code_lines():
        if not (_EVAL_RE.search(line) or (extra and extra.search(line))):
            continue
        if ctx.uses_user_input(lineno, line):
            yield RuleMatch(lineno, snippet(line))


CODE_INJECTION = Rule(
    name="eval_with_input",
    type="Code Injection",
    severity=Severity.critical,
    match=match_code_injection,
    languages=SERVER_LANGUAGES,
    description="Request data passed to a dynamic code evaluation function",
    remediation=(
        "Never evaluate user input as code. Parse the data with a strict parser (JSON, "
        "ast.literal_eval) or map inputs onto a fixed set of allowed operations."
    ),
    fixed_code={
        "python": "value = ast.literal_eval(request.form['value'])",
        "javascript": "const value = JSON.parse(req.body.value);",
        "php": "$value = json_decode($_POST['value'], true);",
        "default": "Replace dynamic evaluation with a safe parser or an allow-list of operations.",
    },
)
