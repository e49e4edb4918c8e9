from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from loguru import logger

from routeseq.shared.cancellation import CancellationToken
from routeseq.shared.errors import CollaboratorError, CollaboratorTimeout, OperationCancelled

T = TypeVar("T")


async def call_collaborator(
    op: str,
    awaitable: Awaitable[T],
    *,
    target: str = "",
    token: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Await one call into an external collaborator.

    Every oracle/assistant/introspection call goes through here so the three
    boundary concerns are handled the same way:
      - cancellation is checked before the call (OperationCancelled)
      - the call is bounded by ``timeout`` seconds (CollaboratorTimeout)
      - any other failure is wrapped in CollaboratorError with op + target
    """
    if token is not None and token.is_cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled(op)

    try:
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.bind(op=op).warning(f"timed out after {timeout}s: {target}")
        raise CollaboratorTimeout(op, target, exc) from exc
    except (CollaboratorError, OperationCancelled):
        raise
    except Exception as exc:
        logger.bind(op=op).warning(f"failed for {target}: {type(exc).__name__}: {exc}")
        raise CollaboratorError(op, target, exc) from exc
