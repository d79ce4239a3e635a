"""BugShield: pattern-based vulnerability scanning for source files and repositories."""

__version__ = "0.1.0"
