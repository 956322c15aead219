import asyncio
from typing import Callable, Optional

TickCallback = Callable[[int], None]


class ProgressHandle:
    def __init__(self) -> None:
        self.percent = 0
        self.task: Optional["asyncio.Task[None]"] = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class ProgressSimulator:
    """
    Fake progress for the scan animation.

    Ticks every `interval` seconds, adding `step` each time, and stalls at
    `ceiling` until stopped. It never reports completion: whoever stops it
    sets 100 once the real work is done.
    """

    def __init__(self, interval: float = 0.05, step: int = 2, ceiling: int = 90):
        if interval <= 0:
            raise ValueError("interval must be positive")
        if step <= 0:
            raise ValueError("step must be positive")
        if not 0 <= ceiling < 100:
            raise ValueError("ceiling must be in [0, 100)")
        self.interval = interval
        self.step = step
        self.ceiling = ceiling

    def start(self, on_tick: TickCallback) -> ProgressHandle:
        handle = ProgressHandle()
        handle.task = asyncio.get_running_loop().create_task(self._run(handle, on_tick))
        return handle

    def stop(self, handle: Optional[ProgressHandle]) -> None:
        if handle is None or handle.task is None:
            return
        if not handle.task.done():
            handle.task.cancel()

    async def _run(self, handle: ProgressHandle, on_tick: TickCallback) -> None:
        while True:
            await asyncio.sleep(self.interval)
            handle.percent = min(handle.percent + self.step, self.ceiling)
            on_tick(handle.percent)
