"""
Sensitive-data redaction.

Two layers:

* :func:`redact` strips configured fields from a request snapshot before it
  is dumped into a crash report.  It returns a copy; the caller's snapshot
  is left untouched.
* :class:`SecretScrubber` is a ``logging.Filter`` that masks credentials in
  the reporter's own log lines (error messages often quote them).
"""

import logging
import re
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, Pattern

from .constants import DEFAULT_REDACTED_FIELDS, REMOVED_MARKER, RedactedFields

# ── Request snapshot redaction ───────────────────────────────────


def redact(snapshot, fields: RedactedFields = DEFAULT_REDACTED_FIELDS):
    """Return a copy of *snapshot* with every configured field masked.

    Server variables are also masked under their ``REDIRECT_``-prefixed name,
    which is how rewritten requests expose them.  Header names are matched
    case-insensitively.
    """
    return replace(
        snapshot,
        request=_mask(snapshot.request, fields.request),
        query=dict(snapshot.query),
        server=_mask(snapshot.server, _with_redirect_aliases(fields.server)),
        headers=_mask(snapshot.headers, fields.headers, case_insensitive=True),
        cookies=_mask(snapshot.cookies, fields.cookies),
    )


def _with_redirect_aliases(names: Iterable[str]) -> FrozenSet[str]:
    names = frozenset(names)
    return names | {f"REDIRECT_{name}" for name in names}


def _mask(
    values: Dict[str, object], names: Iterable[str], *, case_insensitive: bool = False
) -> Dict[str, object]:
    masked = dict(values)
    if case_insensitive:
        wanted = {n.lower() for n in names}
        for key in masked:
            if str(key).lower() in wanted:
                masked[key] = REMOVED_MARKER
        return masked

    for name in names:
        if name in masked:
            masked[name] = REMOVED_MARKER
    return masked


# ── Log scrubbing ────────────────────────────────────────────────

_SENSITIVE_PATTERNS: list[tuple[Pattern, str]] = [
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), r"\1[REDACTED]"),
    (
        re.compile(
            r"(?i)(api[_-]?key|token|secret|password|passwd|authorization|cookie)"
            r"(\s*[:=]\s*)"
            r"(['\"]?)([^\s'\"]{4,})\3"
        ),
        r"\1\2\3[REDACTED]\3",
    ),
]


class SecretScrubber(logging.Filter):
    """Logging filter that masks credentials in the formatted message."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = scrub_text(record.getMessage())
        record.args = None
        return True


def scrub_text(text: str) -> str:
    """Apply all sensitive-data patterns to *text* and return the result."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
