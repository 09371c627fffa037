from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.settings import settings

_BASE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"cross-origin-opener-policy", b"same-origin"),
)
# Event streams must reach dashboards unbuffered and uncached.
_STREAM_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-accel-buffering", b"no"),
    (b"cache-control", b"no-cache"),
)


class SecurityHeadersMiddleware:
    """Add default security headers, plus proxy hints for server-sent event responses."""

    def __init__(self, app: ASGIApp, enable_hsts: bool = True) -> None:
        self.app = app
        self.enable_hsts = enable_hsts

    def _headers_for(self, content_type: bytes) -> list[tuple[bytes, bytes]]:
        extra = list(_BASE_HEADERS)
        if self.enable_hsts:
            extra.append((b"strict-transport-security", b"max-age=63072000; includeSubDomains"))
        if settings.content_security_policy:
            name = (
                b"content-security-policy-report-only"
                if settings.content_security_policy_report_only
                else b"content-security-policy"
            )
            extra.append((name, settings.content_security_policy.encode()))
        if content_type.startswith(b"text/event-stream"):
            extra.extend(_STREAM_HEADERS)
        return extra

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                current = list(message.get("headers", []))
                present = {key.lower() for key, _ in current}
                content_type = next(
                    (value for key, value in current if key.lower() == b"content-type"), b""
                )
                for key, value in self._headers_for(content_type):
                    if key not in present:
                        current.append((key, value))
                message["headers"] = current
            await send(message)

        await self.app(scope, receive, send_with_headers)
