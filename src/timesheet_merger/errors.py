from __future__ import annotations


class MergerError(RuntimeError):
    pass


class ParseError(MergerError):
    """Malformed source file or unexpected remote response shape."""


class ConfigError(MergerError):
    """Missing or unparsable match table / ledger document."""


class UnmatchedEntryError(ConfigError):
    def __init__(self, keys: list[str]):
        self.keys = keys
        shown = ", ".join(keys[:10])
        more = f" (+{len(keys) - 10} more)" if len(keys) > 10 else ""
        super().__init__(f"no match for {len(keys)} key(s): {shown}{more}")


class AuthError(MergerError):
    pass


class SubmissionError(MergerError):
    """Remote service rejected an entry.

    Carries the structured error document returned by the service, when there
    is one, plus the payload that was sent.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
        details: list[str] | None = None,
        payload: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.details = list(details or [])
        self.payload = payload


class DeletionError(MergerError):
    def __init__(self, message: str, *, remote_id: str, status_code: int | None = None):
        super().__init__(message)
        self.remote_id = remote_id
        self.status_code = status_code
