"""Per-request context passed explicitly to the marketplace client.

Session and CSRF state live with the caller, never in module globals, so
every wizard or toggle can be built against a hand-made context in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ClientContext:
    """Immutable snapshot of who is calling and how to authenticate."""
    csrf_token: str | None = None
    session_cookie: str | None = None
    user_id: str | None = None
    theme: str = "system"
    extra_headers: dict[str, str] = field(default_factory=dict)

    @property
    def owner(self) -> str:
        """Key that ties server-side wizard state to one caller."""
        return self.session_cookie or self.user_id or ""

    def headers(self) -> dict[str, str]:
        """Headers to attach to a mutating request."""
        headers = dict(self.extra_headers)
        if self.csrf_token:
            headers["X-CSRF-Token"] = self.csrf_token
        if self.session_cookie:
            headers["Cookie"] = f"_session={self.session_cookie}"
        return headers


ANONYMOUS = ClientContext()
