# log_prioritization/app/signatures.py
import re
from collections import Counter
from typing import Iterable, List

import structlog

log = structlog.get_logger(__name__)

GUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b"
)
WINDOWS_PATH_RE = re.compile(r"[A-Za-z]:\\[^\\\s]+(?:\\[^\\\s]+)*")
POSIX_PATH_RE = re.compile(r"(?<![\w.])/(?:[\w.-]+/)+[\w.-]+")
NUMBER_RE = re.compile(r"\b\d+\b")

MAX_FREQUENT_ERRORS = 10


def error_signature(message: str | None) -> str:
    """
    Collapse the variable parts of an error message so that
    "Order 1234 failed" and "Order 98 failed" group together.

    GUIDs go first, since they contain digit runs the number rule would
    otherwise eat; paths before numbers for the same reason.
    """
    if not message:
        return ""

    signature = GUID_RE.sub("[GUID]", message)
    signature = WINDOWS_PATH_RE.sub("[FILEPATH]", signature)
    signature = POSIX_PATH_RE.sub("[FILEPATH]", signature)
    signature = NUMBER_RE.sub("[NUMBER]", signature)
    return signature.strip()


def frequent_signatures(
    messages: Iterable[str],
    limit: int = MAX_FREQUENT_ERRORS,
) -> List[str]:
    """Signatures seen more than once, most frequent first."""
    counts = Counter(error_signature(m) for m in messages)
    counts.pop("", None)

    frequent = [sig for sig, n in counts.most_common() if n > 1][:limit]
    if frequent:
        log.debug(
            "signatures.frequent_signatures",
            distinct=len(counts),
            frequent=len(frequent),
        )
    return frequent
