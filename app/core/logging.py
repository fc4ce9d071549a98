import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
session_id_ctx: ContextVar[str | None] = ContextVar("session_id", default=None)


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = request_id_ctx.get() or "-"
        record.session_id = session_id_ctx.get() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "request_id": getattr(record, "request_id", "-"),
            "session_id": getattr(record, "session_id", "-"),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def init_logging(debug: bool = False) -> None:
    root = logging.getLogger()
    root.handlers.clear()
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


def bind_session_id(session_id: str | None) -> None:
    """Attach the client session id to log records for the current context."""
    session_id_ctx.set(session_id)


def make_request_context_middleware(cookie_name: str):
    """Build the per-request middleware binding request & client session ids."""

    async def request_context_middleware(request, call_next):  # type: ignore
        rid = str(uuid.uuid4())
        rid_token = request_id_ctx.set(rid)
        sid_token = session_id_ctx.set(request.cookies.get(cookie_name))
        logger = logging.getLogger("app.request")
        logger.debug("request start %s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
            return response
        finally:
            logger.debug("request end")
            session_id_ctx.reset(sid_token)
            request_id_ctx.reset(rid_token)

    return request_context_middleware
