import asyncio

from verifychat.core.events import Restart, UserReply
from verifychat.core.scheduler import AutoAdvanceScheduler, LiveConversation

STATEMENT_FLOW = [
    {"id": "S1", "order": 1, "prompt": "Welcome!", "inputRequired": False},
    {"id": "S2", "order": 2, "prompt": "Ready?", "inputRequired": True, "expectedAnswers": "yes"},
]


class NoCancelScheduler(AutoAdvanceScheduler):
    """Simulates a cancellation that loses the race with the timer."""

    def cancel_all(self):
        return 0


def _bot_texts(collected):
    return [e["text"] for e in collected if e["type"] == "bot_message"]


def test_engine_hands_statement_steps_to_scheduler(make_engine):
    engine = make_engine(STATEMENT_FLOW, inline=False)
    tick = asyncio.run(engine.start(engine.new_session("s1")))
    assert tick.session.currentStepId == "S1"
    assert tick.pending is not None
    assert tick.pending.stepId == "S1"
    assert tick.pending.generation == 0
    assert tick.pending.delayMs == 1500 + 50 * len("Welcome!")


def test_stale_auto_advance_is_noop(make_engine):
    engine = make_engine(STATEMENT_FLOW, inline=False)

    async def scenario():
        t = await engine.start(engine.new_session("s1"))
        stale = t.pending
        t = await engine.dispatch(t.session, Restart())
        return stale, t.session, await engine.auto_advance(t.session, stale.generation, stale.stepId)

    stale, session, tick = asyncio.run(scenario())
    assert session.generation == stale.generation + 1
    assert tick.events == []
    assert session.currentStepId == "S1"


def test_auto_advance_moves_on(make_engine):
    engine = make_engine(STATEMENT_FLOW, inline=False)

    async def scenario():
        t = await engine.start(engine.new_session("s1"))
        return await engine.auto_advance(t.session, t.pending.generation, t.pending.stepId)

    tick = asyncio.run(scenario())
    assert tick.session.currentStepId == "S2"
    assert [e.text for e in tick.events] == ["Ready?"]


def test_live_conversation_reveals_after_delay(make_engine):
    engine = make_engine(STATEMENT_FLOW)
    collected = []

    async def scenario():
        convo = LiveConversation(engine, engine.new_session("s1"), collected.extend, time_scale=0)
        await convo.start()
        assert _bot_texts(collected) == ["Welcome!"]
        await convo.scheduler.drain()
        await convo.send(UserReply("yes"))
        return convo

    convo = asyncio.run(scenario())
    assert _bot_texts(collected) == ["Welcome!", "Ready?"]
    assert convo.session.terminal == "completed"


def test_restart_cancels_pending_advance(make_engine):
    engine = make_engine(STATEMENT_FLOW)
    collected = []

    async def scenario():
        convo = LiveConversation(engine, engine.new_session("s1"), collected.extend, time_scale=0)
        await convo.start()
        await convo.send(Restart())
        await convo.scheduler.drain()
        return convo

    convo = asyncio.run(scenario())
    assert _bot_texts(collected) == ["Welcome!", "Welcome!", "Ready?"]
    assert convo.session.generation == 1


def test_late_timer_after_restart_does_not_resurrect_old_session(make_engine):
    engine = make_engine(STATEMENT_FLOW)
    collected = []

    async def scenario():
        convo = LiveConversation(
            engine, engine.new_session("s1"), collected.extend,
            scheduler=NoCancelScheduler(), time_scale=0,
        )
        await convo.start()
        await convo.send(Restart())
        await convo.scheduler.drain()
        return convo

    convo = asyncio.run(scenario())
    assert _bot_texts(collected).count("Ready?") == 1
    assert convo.session.currentStepId == "S2"


def test_async_sink_is_awaited(make_engine):
    engine = make_engine(STATEMENT_FLOW)
    collected = []

    async def sink(events):
        collected.extend(events)

    async def scenario():
        convo = LiveConversation(engine, engine.new_session("s1"), sink, time_scale=0)
        await convo.start()
        await convo.scheduler.drain()

    asyncio.run(scenario())
    assert _bot_texts(collected) == ["Welcome!", "Ready?"]


def test_scheduler_cancel_all_counts_pending():
    async def scenario():
        s = AutoAdvanceScheduler()
        fired = []

        async def cb():
            fired.append(1)

        s.schedule(10, cb)
        s.schedule(10, cb)
        assert s.pending == 2
        n = s.cancel_all()
        await asyncio.sleep(0)
        return n, fired, s.pending

    n, fired, pending = asyncio.run(scenario())
    assert n == 2
    assert fired == []
    assert pending == 0
