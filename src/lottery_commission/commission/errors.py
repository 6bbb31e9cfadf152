"""Commission error taxonomy and helpers."""

from __future__ import annotations


COMMISSION_RULE_MISSING = "COMMISSION_RULE_MISSING"
ACTOR_NOT_FOUND = "ACTOR_NOT_FOUND"


class CommissionError(RuntimeError):
    """Stable, client-safe error surfaced with a machine-readable code."""

    status_code = 500

    def __init__(self, code: str, detail: str | None = None) -> None:
        self.code = code
        self.detail = detail
        message = f"{code}:{detail}" if detail else code
        super().__init__(message)


class CommissionRuleMissingError(CommissionError):
    """REVENTADO resolved to 0% while enforcement is active."""

    status_code = 422

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(COMMISSION_RULE_MISSING, detail)


class CommissionStoreError(RuntimeError):
    """Raised when commission storage operations fail."""


class ActorNotFoundError(CommissionStoreError):
    """Raised when an actor id has no record in the store."""

    def __init__(self, actor_id: str) -> None:
        self.actor_id = actor_id
        self.code = ACTOR_NOT_FOUND
        super().__init__(f"{ACTOR_NOT_FOUND}:{actor_id}")


def reason_code(exc: Exception) -> str:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code:
        return code
    text = str(exc or "").strip()
    if text.isupper():
        return text
    if ":" in text:
        head = text.split(":", 1)[0].strip()
        if head.isupper():
            return head
    return "INTERNAL_ERROR"
