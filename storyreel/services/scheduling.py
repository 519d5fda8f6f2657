from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

from storyreel.config import Settings

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class StagePolicy:
    """How many scene tasks of one stage may be in flight, and the pause a provider needs between requests.

    ``concurrency`` of ``None`` or ``0`` means every scene is issued at once.
    """

    name: str
    concurrency: int | None = None
    delay_after_request: float = 0.0

    @property
    def sequential(self) -> bool:
        return self.concurrency == 1


@dataclass(frozen=True)
class PipelinePolicies:
    narration: StagePolicy
    images: StagePolicy
    composition: StagePolicy

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelinePolicies":
        return cls(
            narration=StagePolicy("narration", concurrency=1, delay_after_request=settings.tts_request_delay),
            images=StagePolicy("images", concurrency=settings.image_concurrency or None),
            composition=StagePolicy("composition", concurrency=1),
        )


async def run_stage(
    items: Sequence[T],
    worker: Callable[[int, T], Awaitable[R]],
    policy: StagePolicy,
) -> list[R]:
    """Run ``worker`` over ``items`` under ``policy``; results keep the order of ``items``."""
    if policy.sequential:
        results: list[R] = []
        for index, item in enumerate(items):
            results.append(await worker(index, item))
        return results

    semaphore = asyncio.Semaphore(policy.concurrency) if policy.concurrency else None

    async def guarded(index: int, item: T) -> R:
        if semaphore is None:
            return await worker(index, item)
        async with semaphore:
            return await worker(index, item)

    tasks = [asyncio.ensure_future(guarded(index, item)) for index, item in enumerate(items)]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
