from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core import context


class RequestContextMiddleware:
    """Bind request id, tenant and caller role to context vars for structured logs."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode().strip() or str(uuid4())
        tenant_id = headers.get(b"x-tenant-id", b"").decode().strip()
        user_role = headers.get(b"x-user-role", b"").decode().strip().lower()

        context.set_request_id(request_id)
        if tenant_id:
            context.set_tenant_id(tenant_id)
        if user_role:
            context.set_user_role(user_role)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers_list = list(message.get("headers", []))
                headers_list.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers_list
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            context.clear_context()
