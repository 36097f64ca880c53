import asyncio
from unittest.mock import AsyncMock, MagicMock

from interaction.pending import PendingRequests
from orchestrator.orchestrator import GENERIC_FAILURE_MESSAGE, Orchestrator
from shared.errors import PlannerError
from shared.models import EntryRequest, TurnResult


def _session(run_turn):
    session = MagicMock()
    session.turn_lock = asyncio.Lock()
    session.run_turn = run_turn
    return session


def test_planner_error_becomes_generic_failure():
    async def _run():
        session = _session(AsyncMock(side_effect=PlannerError("bad json")))
        orchestrator = Orchestrator(MagicMock(return_value=session), PendingRequests())

        result = await orchestrator.handle(EntryRequest(session_id="s1", input_text="hi"))

        assert result.status == "error"
        assert result.text == GENERIC_FAILURE_MESSAGE
        session.context.add_assistant.assert_called_once_with(GENERIC_FAILURE_MESSAGE)

    asyncio.run(_run())


def test_sessions_created_once_per_id():
    async def _run():
        factory = MagicMock(
            side_effect=lambda sid: _session(AsyncMock(return_value=TurnResult(session_id=sid, status="text")))
        )
        orchestrator = Orchestrator(factory, PendingRequests())

        await orchestrator.handle(EntryRequest(session_id="a", input_text="one"))
        await orchestrator.handle(EntryRequest(session_id="a", input_text="two"))
        await orchestrator.handle(EntryRequest(session_id="b", input_text="three"))

        assert [call.args[0] for call in factory.call_args_list] == ["a", "b"]
        assert orchestrator.session("a").run_turn.await_count == 2

    asyncio.run(_run())


def test_reply_to_pending_prompt_does_not_start_a_turn():
    async def _run():
        pending = PendingRequests()
        session = _session(AsyncMock())
        orchestrator = Orchestrator(MagicMock(return_value=session), pending)
        request = pending.open("s1", "parameters")

        result = await orchestrator.handle(EntryRequest(session_id="s1", input_text="b=5"))

        assert result.status == "delivered"
        assert await pending.wait(request, 1.0) == "b=5"
        session.run_turn.assert_not_awaited()
        assert orchestrator.is_busy("s1") is False

    asyncio.run(_run())


def test_session_cap_forgets_least_recent_idle_session():
    async def _run():
        factory = MagicMock(
            side_effect=lambda sid: _session(AsyncMock(return_value=TurnResult(session_id=sid, status="text")))
        )
        orchestrator = Orchestrator(factory, PendingRequests(), max_sessions=2)

        for sid in ("a", "b", "a", "c"):
            await orchestrator.handle(EntryRequest(session_id=sid, input_text="hi"))

        assert len(orchestrator) == 2
        orchestrator.session("a")
        assert [call.args[0] for call in factory.call_args_list] == ["a", "b", "c"]

    asyncio.run(_run())


def test_session_cap_keeps_sessions_waiting_on_the_user():
    async def _run():
        pending = PendingRequests()
        factory = MagicMock(
            side_effect=lambda sid: _session(AsyncMock(return_value=TurnResult(session_id=sid, status="text")))
        )
        orchestrator = Orchestrator(factory, pending, max_sessions=1)
        await orchestrator.handle(EntryRequest(session_id="a", input_text="hi"))
        pending.open("a", "confirmation")

        await orchestrator.handle(EntryRequest(session_id="b", input_text="hi"))
        orchestrator.session("a")

        assert [call.args[0] for call in factory.call_args_list] == ["a", "b"]

    asyncio.run(_run())
