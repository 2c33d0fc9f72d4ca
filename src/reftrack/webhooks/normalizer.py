"""Normalize loosely-structured payment webhook payloads.

Providers rename fields between API versions, so everything here is lookup by
a list of candidate paths, never by a fixed schema.
"""

from dataclasses import dataclass
from typing import Any, Union

from reftrack.referral.codes import REF_CODE_PATTERN

JSONValue = Union[dict[str, Any], list[Any], str, int, float, bool, None]

# Only purchases that actually took money count as referrals.
PAID_EVENT_TYPES = frozenset({"invoice.paid", "payment.succeeded"})

EVENT_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("id",),
    ("data", "id"),
    ("data", "invoice_id"),
    ("data", "payment_id"),
    ("invoice_id",),
    ("payment_id",),
)

REF_CODE_PATHS: tuple[tuple[str, ...], ...] = (
    ("data", "metadata", "ref"),
    ("data", "metadata", "ref_code"),
    ("data", "ref"),
    ("data", "ref_code"),
    ("metadata", "ref"),
    ("metadata", "ref_code"),
    ("ref",),
    ("ref_code",),
)

MAX_WALK_DEPTH = 64
MAX_WALK_NODES = 10_000


@dataclass(frozen=True)
class NormalizedEvent:
    event_type: str
    event_id: str | None
    ref_code: str | None

    @property
    def is_paid(self) -> bool:
        return self.event_type in PAID_EVENT_TYPES


def _get_path(node: JSONValue, path: tuple[str, ...]) -> JSONValue:
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def normalize_event_type(raw: Any) -> str:
    """Canonical event type: lower case, underscores become dots.

    ``invoice_paid`` and ``invoice.paid`` both become ``invoice.paid``.
    """
    return str(raw or "").lower().replace("_", ".")


def extract_event_type(event: JSONValue) -> str:
    return normalize_event_type(_get_path(event, ("type",)))


def extract_event_id(event: JSONValue) -> str | None:
    """Stable dedup key: first present id among the known locations."""
    for path in EVENT_ID_PATHS:
        value = _get_path(event, path)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def _match_ref(value: str) -> str | None:
    match = REF_CODE_PATTERN.search(value)
    if match:
        return match.group(0)
    value = value.strip()
    return value or None


class _RefCodeWalker:
    """Depth-first search for a ref-like key anywhere in a payload."""

    def __init__(self, max_depth: int = MAX_WALK_DEPTH, max_nodes: int = MAX_WALK_NODES):
        self.max_depth = max_depth
        self.max_nodes = max_nodes
        self.visited: set[int] = set()
        self.nodes = 0

    def walk(self, node: JSONValue, depth: int = 0) -> str | None:
        if depth > self.max_depth or self.nodes >= self.max_nodes:
            return None
        if isinstance(node, str):
            match = REF_CODE_PATTERN.search(node)
            return match.group(0) if match else None
        if not isinstance(node, (dict, list)):
            return None
        if id(node) in self.visited:
            return None
        self.visited.add(id(node))
        self.nodes += 1

        items = node.items() if isinstance(node, dict) else enumerate(node)
        for key, value in items:
            if isinstance(value, str) and isinstance(key, str) and "ref" in key.lower():
                found = _match_ref(value)
                if found:
                    return found
            found = self.walk(value, depth + 1)
            if found:
                return found
        return None


def extract_ref_code(event: JSONValue) -> str | None:
    """Find the referral code embedded in a payment payload.

    Known metadata locations are checked first. Failing that, the whole
    payload is walked: a value under a key containing "ref" is taken as is
    unless it holds something shaped like a generated code, and any other
    string is searched for that shape (e.g. a checkout URL with ``?ref=``).
    """
    for path in REF_CODE_PATHS:
        value = _get_path(event, path)
        if isinstance(value, str) and value.strip():
            return value.strip()

    return _RefCodeWalker().walk(event)


def classify(event: JSONValue) -> NormalizedEvent:
    """Reduce a parsed payload to what attribution needs."""
    return NormalizedEvent(
        event_type=extract_event_type(event),
        event_id=extract_event_id(event),
        ref_code=extract_ref_code(event),
    )
