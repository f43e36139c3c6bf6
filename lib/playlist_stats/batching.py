"""
ウィンドウ単位の並列実行（レート制限対策）。

同時に batch_size 件だけ走らせ、全件の完了を待ってから pause_s 休んで次へ。
1 件の失敗は BatchResult.error に入るだけで、他の件は止めない。
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchResult(Generic[T, R]):
    item: T
    value: Optional[R] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _run_one(item: T, fn: Callable[[T], Awaitable[R]]) -> BatchResult[T, R]:
    try:
        return BatchResult(item=item, value=await fn(item))
    except Exception as e:
        logger.warning(f"[Batch] item={item!r} failed: {e}")
        return BatchResult(item=item, error=e)


async def run_in_batches(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    batch_size: int = 3,
    pause_s: float = 0.1,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> List[BatchResult[T, R]]:
    """Run ``fn`` over ``items`` in windows of ``batch_size``.

    Results come back in input order. ``sleep`` is only called between windows,
    never after the last one.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    results: List[BatchResult[T, R]] = []
    for start in range(0, len(items), batch_size):
        if start > 0 and pause_s > 0:
            await sleep(pause_s)
        window = items[start:start + batch_size]
        logger.debug(f"[Batch] window start={start} size={len(window)}")
        results.extend(await asyncio.gather(*(_run_one(item, fn) for item in window)))
    return results
