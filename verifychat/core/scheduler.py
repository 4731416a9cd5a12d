"""
Timed auto-advance for interactive front ends.

In the HTTP API statement steps advance inside the same tick and the client
paces the reveal with BotMessage.delayMs. A live front end (the terminal chat)
instead runs the engine with inline_auto_advance=False and lets this module
fire each PendingAdvance after its delay.

Every scheduled advance carries the session generation it was created for.
Restart bumps the generation, so an advance that outlives its session does
nothing even if cancellation loses the race.
"""
import asyncio
import inspect
from typing import Awaitable, Callable, List, Optional, Set

from verifychat.core.engine import FlowEngine
from verifychat.core.events import PendingAdvance, Restart, Tick
from verifychat.observability.logging import log
from verifychat.store.models import Session


class AutoAdvanceScheduler:
    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, delay_sec: float, callback: Callable[[], Awaitable[None]]) -> asyncio.Task:
        async def _run():
            await asyncio.sleep(max(0.0, delay_sec))
            await callback()

        task = asyncio.get_running_loop().create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> int:
        n = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                n += 1
        self._tasks.clear()
        return n

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def drain(self) -> None:
        """Wait until nothing is scheduled (tasks may schedule follow-ups)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


Sink = Callable[[List[dict]], Optional[Awaitable[None]]]


class LiveConversation:
    """
    One conversation driven in real time.
    `sink` receives the serialized outbound events of every tick.
    """

    def __init__(
        self,
        engine: FlowEngine,
        session: Session,
        sink: Sink,
        scheduler: Optional[AutoAdvanceScheduler] = None,
        time_scale: float = 1.0,
    ):
        self.engine = engine
        self.engine.inline_auto_advance = False
        self.session = session
        self.sink = sink
        self.scheduler = scheduler or AutoAdvanceScheduler()
        self.time_scale = time_scale

    async def start(self) -> None:
        await self._deliver(await self.engine.start(self.session))

    async def send(self, event) -> None:
        if isinstance(event, Restart):
            cancelled = self.scheduler.cancel_all()
            log("auto_advance_cancelled", sessionId=self.session.sessionId, cancelled=cancelled)
        await self._deliver(await self.engine.dispatch(self.session, event))

    async def _deliver(self, tick: Tick) -> None:
        self.session = tick.session
        if tick.events:
            out = self.sink(tick.to_dicts())
            if inspect.isawaitable(out):
                await out
        if tick.pending is not None:
            pending = tick.pending
            self.scheduler.schedule(pending.delayMs / 1000.0 * self.time_scale, lambda: self._fire(pending))

    async def _fire(self, pending: PendingAdvance) -> None:
        tick = await self.engine.auto_advance(self.session, pending.generation, pending.stepId)
        await self._deliver(tick)
