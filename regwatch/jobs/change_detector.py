from __future__ import annotations

from dataclasses import dataclass
import hashlib


@dataclass(slots=True, frozen=True)
class ChangeDecision:
    changed: bool
    content_hash: str
    first_capture: bool


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def detect_change(previous_hash: str | None, text: str) -> ChangeDecision:
    digest = content_hash(text)
    if not previous_hash:
        return ChangeDecision(changed=True, content_hash=digest, first_capture=True)
    return ChangeDecision(changed=previous_hash != digest, content_hash=digest, first_capture=False)


def next_version(latest_version: int | None, decision: ChangeDecision) -> int:
    """Version number to record for a changed document.

    A first capture keeps whatever ``latest_version`` the row already holds
    (1 when unset); every later change increments it.
    """
    current = latest_version or 1
    if decision.first_capture:
        return current
    return current + 1


def snapshot_path(document_id: str | int, version: int) -> str:
    return f"{document_id}/v{version}/snapshot.pdf"
