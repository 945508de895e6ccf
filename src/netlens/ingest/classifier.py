"""
Log-type classifier.

Looks at a bounded prefix of a capture and decides what kind of output
it is (running config, syslog, interface listing, ...). The arbitrator
uses the result to bias engine selection; it never decides the vendor.
"""

import logging
import re
from pathlib import Path

from ..models.record import LogType

_LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_LINES = 500

_RUNNING_CONFIG = re.compile(
    r"^(\s*current\s+configuration|\s*building\s+configuration|!.*configuration"
    r"|system-view|display\s+current-configuration)",
    re.MULTILINE,
)
_VERSION_DUMP = re.compile(
    r"^\s*version\s+|\bversion\b.+v[0-9]+|\bversion\b.+vrp|\bsoftware\b.*version",
    re.MULTILINE,
)
_INTERFACE_LISTING = re.compile(
    r"^(\s*show\s+interfaces|\s*display\s+interface|\s*interface\s+.+)",
    re.MULTILINE,
)
_SYSLOG_PREFIX = re.compile(r"^[A-Za-z]{3}\s+\d{1,2}\s+\d{2}:\d{2}:\d{2}\s+")
_AUDIT = re.compile(r"^\s*(audit|accounting)\b|\baudit\s+log\b|%parser-5-cfglog", re.MULTILINE)
_INTERFACE_WORD = re.compile(r"\binterface\b")
_IP_ADDRESS = re.compile(r"\bip address\b")


def classify_text(text: str) -> LogType:
    """Classify already-read text (callers bound the prefix)."""
    if not text.strip():
        return LogType.UNKNOWN
    first_line = text.lstrip("\r\n").splitlines()[0]
    lowered = text.lower()

    if (_RUNNING_CONFIG.search(lowered) or "running-config" in lowered
            or "current configuration" in lowered):
        return LogType.RUNNING_CONFIG
    if "startup-config" in lowered or "startup configuration" in lowered:
        return LogType.STARTUP_CONFIG
    if any(marker in lowered for marker in (
            "show tech", "tech-support", "display diagnosis information", "display version")):
        return LogType.TECH_SUPPORT
    if _VERSION_DUMP.search(lowered):
        return LogType.SHOW_VERSION
    if _INTERFACE_LISTING.search(lowered):
        return LogType.SHOW_INTERFACES
    if _SYSLOG_PREFIX.match(first_line):
        return LogType.SYSLOG
    if _AUDIT.search(lowered):
        return LogType.AUDIT

    if _INTERFACE_WORD.search(lowered) and _IP_ADDRESS.search(lowered):
        return LogType.RUNNING_CONFIG
    if any(word in lowered for word in ("configuration", "hostname", "acl", "ip route")):
        return LogType.RUNNING_CONFIG
    return LogType.OTHER


def read_prefix(path: str | Path, max_lines: int) -> str:
    """Read at most ``max_lines`` lines of a file."""
    lines = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for i, line in enumerate(f):
            if i >= max_lines:
                break
            lines.append(line)
    return "".join(lines)


def classify_file(path: str | Path, max_lines: int = DEFAULT_MAX_LINES) -> LogType:
    """Classify a file from its first ``max_lines`` lines; unreadable files are UNKNOWN."""
    try:
        text = read_prefix(path, max_lines)
    except OSError as exc:
        _LOGGER.warning("Could not read %s for classification: %s", path, exc)
        return LogType.UNKNOWN
    return classify_text(text)
