from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> list[Any]:
  """Run awaitables concurrently; on the first failure cancel the rest and re-raise it."""
  tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
  try:
    return list(await asyncio.gather(*tasks))
  except BaseException:
    for task in tasks:
      task.cancel()
    # Let cancelled siblings unwind before the error propagates.
    await asyncio.gather(*tasks, return_exceptions=True)
    raise
