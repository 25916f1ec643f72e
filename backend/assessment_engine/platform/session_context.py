from contextvars import ContextVar
from typing import Optional

_session_id_ctx: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


def set_session_id(session_id: str):
    return _session_id_ctx.set(session_id)


def reset_session_id(token) -> None:
    _session_id_ctx.reset(token)


def get_session_id() -> Optional[str]:
    return _session_id_ctx.get()
