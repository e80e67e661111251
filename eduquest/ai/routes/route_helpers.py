from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from fastapi import Header, Request
from starlette.concurrency import run_in_threadpool

from ..cancellation import CancelSignal
from ..credentials import UserKeys

_log = logging.getLogger(__name__)

_DISCONNECT_POLL_SEC = 0.25


def user_keys(
    x_gemini_api_key: Optional[str] = Header(default=None),
    x_openai_api_key: Optional[str] = Header(default=None),
) -> UserKeys:
    return UserKeys(gemini_key=x_gemini_api_key or None, openai_key=x_openai_api_key or None)


async def call_capability(request: Request, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a blocking capability in the threadpool, cancelling it if the client goes away."""
    cancel = CancelSignal()
    task = asyncio.ensure_future(run_in_threadpool(fn, *args, cancel=cancel, **kwargs))
    try:
        while not task.done():
            done, _ = await asyncio.wait({task}, timeout=_DISCONNECT_POLL_SEC)
            if done:
                break
            if await request.is_disconnected():
                _log.info("client disconnected; cancelling %s", getattr(fn, "__name__", "capability"))
                cancel.cancel("client disconnected")
        return task.result()
    finally:
        if not task.done():
            cancel.cancel("request aborted")
