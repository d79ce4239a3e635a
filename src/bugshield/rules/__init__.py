"""Ordered registry of detection rules.

Rules are evaluated in this order; within a rule, matches are reported in
ascending line order.
"""

from .auth import INSECURE_AUTHENTICATION, MISSING_CSRF_PROTECTION
from .common import Rule, RuleMatch, SourceContext, language_for
from .files import PATH_TRAVERSAL
from .injection import CODE_INJECTION, COMMAND_INJECTION, SQL_INJECTION
from .secrets import HARDCODED_SECRET
from .xss import XSS

RULES: tuple[Rule, ...] = (
    SQL_INJECTION,
    XSS,
    HARDCODED_SECRET,
    INSECURE_AUTHENTICATION,
    MISSING_CSRF_PROTECTION,
    PATH_TRAVERSAL,
    COMMAND_INJECTION,
    CODE_INJECTION,
)

__all__ = ["RULES", "Rule", "RuleMatch", "SourceContext", "language_for"]
