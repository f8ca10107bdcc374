"""Tests for Room: edits, fan-out, control requests and lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from coderoom.connections.mock import MockConnection
from coderoom.core.room import REVIEW_FAILED, RUN_ACK, RUN_BUSY, SAVE_ACK, Room
from coderoom.errors import ReviewError, ReviewNotConfiguredError
from coderoom.execution.mock import MockExecutionBackend
from coderoom.models.enums import ControlEvent, ExecutionStage, RoomState, RunPolicy, UpdateEvent
from coderoom.models.execution import ExecutionResult
from coderoom.models.messages import ApiRequest
from coderoom.models.room import RetryPolicy, RoomConfig
from coderoom.review.mock import MockReviewProvider
from coderoom.telemetry.base import Attr, SpanKind
from coderoom.telemetry.mock import MockTelemetryProvider
from tests.conftest import make_delete, make_insert


async def _join(room: Room, conn: MockConnection, advance) -> asyncio.Task[None]:
    task = asyncio.create_task(room.attach(conn))
    await advance(20)
    return task


class TestAttach:
    async def test_new_connection_gets_snapshot(self, room: Room, advance) -> None:
        await room.buffer.insert(0, "print(1)")
        conn = MockConnection()
        task = await _join(room, conn, advance)

        assert conn.sent_messages() == [{"event": "connection_update", "update": "print(1)"}]
        assert room.connection_count == 1

        conn.feed_close()
        await task
        assert room.connection_count == 0
        assert conn.closed

    async def test_snapshot_waits_for_delay(self, executor, advance) -> None:
        room = Room("r", config=RoomConfig(snapshot_delay=0.05), executor=executor)
        conn = MockConnection()
        task = await _join(room, conn, advance)
        assert conn.sent == []
        await asyncio.sleep(0.1)
        assert conn.sent_events() == ["connection_update"]
        conn.feed_close()
        await task

    async def test_failed_snapshot_removes_connection(self, room: Room, advance) -> None:
        conn = MockConnection(fail_on_send=True)
        task = await _join(room, conn, advance)
        await task
        assert room.connection_count == 0
        assert conn.closed


class TestEdits:
    async def test_edit_applied_and_echoed_to_others(self, room: Room, advance) -> None:
        alice, bob = MockConnection("alice"), MockConnection("bob")
        tasks = [await _join(room, alice, advance), await _join(room, bob, advance)]

        alice.feed(make_insert(0, "hello"))
        await advance(20)

        assert await room.buffer.snapshot() == "hello"
        assert alice.sent_events() == ["connection_update"]
        assert bob.sent_messages()[-1] == {
            "event": "input_update",
            "update": make_insert(0, "hello"),
        }

        for conn in (alice, bob):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_delete_echo_keeps_wire_field_names(self, room: Room, advance) -> None:
        await room.buffer.insert(0, "abcdef")
        alice, bob = MockConnection("alice"), MockConnection("bob")
        tasks = [await _join(room, alice, advance), await _join(room, bob, advance)]

        alice.feed(make_delete(1, 3))
        await advance(20)

        assert await room.buffer.snapshot() == "adef"
        assert bob.sent_messages()[-1]["update"] == make_delete(1, 3)

        for conn in (alice, bob):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_rejected_edit_not_echoed(self, room: Room, advance) -> None:
        alice, bob = MockConnection("alice"), MockConnection("bob")
        tasks = [await _join(room, alice, advance), await _join(room, bob, advance)]

        alice.feed(make_insert(10, "x"))
        await advance(20)

        assert await room.buffer.snapshot() == ""
        assert bob.sent_events() == ["connection_update"]

        for conn in (alice, bob):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_malformed_messages_dropped(self, room: Room, advance) -> None:
        alice, bob = MockConnection("alice"), MockConnection("bob")
        tasks = [await _join(room, alice, advance), await _join(room, bob, advance)]

        alice.feed("not json")
        alice.feed("[1, 2]")
        alice.feed({"event": "text_update", "type": "insert"})
        alice.feed({"event": "unknown"})
        alice.feed(make_insert(0, "ok"))
        await advance(10)

        assert await room.buffer.snapshot() == "ok"
        assert room.connection_count == 2
        assert bob.sent_events() == ["connection_update", "input_update"]

        for conn in (alice, bob):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_per_connection_order_preserved(self, room: Room, advance) -> None:
        conn = MockConnection()
        task = await _join(room, conn, advance)
        for i, ch in enumerate("abcdef"):
            conn.feed(make_insert(i, ch))
        conn.feed_close()
        await task
        assert await room.buffer.snapshot() == "abcdef"

    async def test_edit_span_recorded(
        self, room: Room, telemetry: MockTelemetryProvider
    ) -> None:
        assert await room.handle_edit(None, make_insert(0, "x"))
        assert not await room.handle_edit(None, make_insert(5, "x"))
        spans = telemetry.get_spans(SpanKind.ROOM_EDIT)
        assert [s.attributes[Attr.EDIT_APPLIED] for s in spans] == [True, False]


class TestBroadcast:
    async def test_failed_connection_removed_others_delivered(
        self, room: Room, telemetry: MockTelemetryProvider, advance
    ) -> None:
        good = [MockConnection(f"c{i}") for i in range(3)]
        bad = MockConnection("bad")
        tasks = [await _join(room, c, advance) for c in good]
        tasks.append(await _join(room, bad, advance))
        bad.fail_on_send = True

        delivered = await room.broadcast(UpdateEvent.OUTPUT_UPDATE, "hi")

        assert delivered == 3
        assert room.connection_count == 3
        assert not room.has_connection(bad)
        assert bad.closed
        for conn in good:
            assert conn.sent_messages()[-1] == {"event": "output_update", "update": "hi"}
        assert telemetry.get_metrics("coderoom.broadcast.failed")[0].value == 1

        for conn in good:
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_slow_connection_times_out(self, executor, advance) -> None:
        class SlowConnection(MockConnection):
            async def send(self, message: str) -> None:
                if self.sent:
                    await asyncio.sleep(10)
                await super().send(message)

        room = Room(
            "r", config=RoomConfig(snapshot_delay=0, send_timeout=0.05), executor=executor
        )
        slow, fast = SlowConnection("slow"), MockConnection("fast")
        tasks = [await _join(room, slow, advance), await _join(room, fast, advance)]

        assert await room.broadcast(UpdateEvent.OUTPUT_UPDATE, "x") == 1
        assert not room.has_connection(slow)
        assert fast.sent_events()[-1] == "output_update"

        fast.feed_close()
        await asyncio.gather(*tasks)

    async def test_membership_changes_while_send_in_flight(self, executor, advance) -> None:
        release = asyncio.Event()

        class GatedConnection(MockConnection):
            async def send(self, message: str) -> None:
                if self.sent:
                    await release.wait()
                await super().send(message)

        room = Room("r", config=RoomConfig(snapshot_delay=0, send_timeout=5), executor=executor)
        gated, leaving = GatedConnection("gated"), MockConnection("leaving")
        tasks = [await _join(room, gated, advance), await _join(room, leaving, advance)]

        pending = asyncio.create_task(room.broadcast(UpdateEvent.OUTPUT_UPDATE, "x"))
        await advance()
        assert not pending.done()

        leaving.feed_close()
        await asyncio.wait_for(tasks.pop(), timeout=1)
        assert not room.has_connection(leaving)

        late = MockConnection("late")
        tasks.append(asyncio.create_task(room.attach(late)))
        await advance()
        assert room.has_connection(late)
        assert late.sent == []

        release.set()
        assert await pending == 2
        await advance(20)
        assert late.sent_events() == ["connection_update"]
        assert gated.sent_events() == ["connection_update", "output_update"]

        for conn in (gated, late):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_exclude_skips_sender(self, room: Room, advance) -> None:
        a, b = MockConnection("a"), MockConnection("b")
        tasks = [await _join(room, a, advance), await _join(room, b, advance)]
        assert await room.broadcast(UpdateEvent.INPUT_UPDATE, {"k": 1}, exclude=a) == 1
        assert a.sent_events() == ["connection_update"]
        for conn in (a, b):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_parsed_payload_sent_as_object(self, room: Room, advance) -> None:
        conn = MockConnection()
        task = await _join(room, conn, advance)
        await room.broadcast(UpdateEvent.INPUT_UPDATE, '{"pos": 1}', parsed=True)
        assert conn.sent_messages()[-1]["update"] == {"pos": 1}
        conn.feed_close()
        await task


class TestRunCode:
    async def test_output_broadcast_to_everyone(
        self, room: Room, executor: MockExecutionBackend, advance
    ) -> None:
        await room.buffer.insert(0, 'print("hi")')
        a, b = MockConnection("a"), MockConnection("b")
        tasks = [await _join(room, a, advance), await _join(room, b, advance)]

        request = ApiRequest(event=ControlEvent.RUN_CODE, language="Python")
        response = await room.handle_control(request)

        assert response.status_code == 200
        assert response.body() == {"message": RUN_ACK}
        assert executor.calls[0].room_tag == "test-room"
        assert executor.calls[0].language == "Python"
        assert executor.calls[0].base_name == "main-"
        assert executor.calls[0].source_text == 'print("hi")'
        for conn in (a, b):
            assert conn.sent_messages()[-1] == {"event": "output_update", "update": "ok\n"}

        for conn in (a, b):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_failure_is_broadcast_and_acknowledged(self, advance) -> None:
        executor = MockExecutionBackend(
            [ExecutionResult.failure(ExecutionStage.UNSUPPORTED, "unsupported language: 'COBOL'")]
        )
        room = Room("r", config=RoomConfig(snapshot_delay=0), executor=executor)
        conn = MockConnection()
        task = await _join(room, conn, advance)

        request = ApiRequest(event=ControlEvent.RUN_CODE, language="COBOL")
        response = await room.handle_control(request)

        assert response.body() == {"message": RUN_ACK}
        assert conn.sent_messages()[-1]["update"].startswith("unsupported language")
        conn.feed_close()
        await task

    async def test_backend_exception_becomes_error_output(self, advance) -> None:
        class Exploding(MockExecutionBackend):
            async def run(self, *args, **kwargs) -> ExecutionResult:
                raise RuntimeError("backend down")

        room = Room("r", config=RoomConfig(snapshot_delay=0), executor=Exploding())
        conn = MockConnection()
        task = await _join(room, conn, advance)

        result = await room.run_code("Python")

        assert result is not None
        assert result.stage == ExecutionStage.EXECUTE
        assert "backend down" in conn.sent_messages()[-1]["update"]
        conn.feed_close()
        await task

    async def test_queue_policy_serialises_runs(self, advance) -> None:
        gate = asyncio.Event()
        executor = MockExecutionBackend(gate=gate)
        room = Room("r", config=RoomConfig(snapshot_delay=0), executor=executor)

        runs = [asyncio.create_task(room.run_code("Python")) for _ in range(3)]
        await advance(20)
        assert room.state == RoomState.RUNNING
        assert len(executor.calls) == 1

        gate.set()
        results = await asyncio.gather(*runs)
        assert all(r is not None for r in results)
        assert len(executor.calls) == 3
        assert executor.max_active == 1
        assert room.state == RoomState.IDLE

    async def test_reject_policy_refuses_concurrent_run(self, advance) -> None:
        gate = asyncio.Event()
        executor = MockExecutionBackend(gate=gate)
        room = Room(
            "r",
            config=RoomConfig(snapshot_delay=0, run_policy=RunPolicy.REJECT),
            executor=executor,
        )

        first = asyncio.create_task(room.run_code("Python"))
        await advance(20)
        request = ApiRequest(event=ControlEvent.RUN_CODE, language="Python")
        response = await room.handle_control(request)
        assert response.status_code == 409
        assert response.message == RUN_BUSY

        gate.set()
        assert await first is not None
        assert len(executor.calls) == 1

    async def test_edits_flow_while_code_runs(self, advance) -> None:
        gate = asyncio.Event()
        room = Room(
            "r", config=RoomConfig(snapshot_delay=0), executor=MockExecutionBackend(gate=gate)
        )
        conn = MockConnection()
        task = await _join(room, conn, advance)

        conn.feed({"event": "run_code", "language": "Python"})
        conn.feed(make_insert(0, "x"))
        await advance(20)
        assert await room.buffer.snapshot() == "x"
        assert room.state == RoomState.RUNNING

        gate.set()
        await room.drain()
        assert conn.sent_events()[-1] == "output_update"
        conn.feed_close()
        await task


class TestOtherControls:
    async def test_code_save_acknowledged(self, room: Room) -> None:
        response = await room.handle_control(ApiRequest(event=ControlEvent.CODE_SAVE))
        assert response.body() == {"message": SAVE_ACK}

    async def test_review_returns_text(self, room: Room, reviewer: MockReviewProvider) -> None:
        await room.buffer.insert(0, "x = 1")
        response = await room.handle_control(ApiRequest(event=ControlEvent.CODE_REVIEW))
        assert response.body() == {"review": "Looks good."}
        assert reviewer.calls == ["x = 1"]

    async def test_review_retries_retryable_errors(self) -> None:
        reviewer = MockReviewProvider(
            ["fine"], errors=[ReviewError("busy", retryable=True, status_code=503)]
        )
        room = Room(
            "r",
            config=RoomConfig(
                snapshot_delay=0,
                review_retry=RetryPolicy(max_retries=1, base_delay_seconds=0.001),
            ),
            executor=MockExecutionBackend(),
            reviewer=reviewer,
        )
        assert await room.review_code() == "fine"
        assert len(reviewer.calls) == 2

    async def test_review_failure_is_internal_error(self) -> None:
        reviewer = MockReviewProvider(errors=[ReviewError("bad key", status_code=401)])
        room = Room("r", executor=MockExecutionBackend(), reviewer=reviewer)
        response = await room.handle_control(ApiRequest(event=ControlEvent.CODE_REVIEW))
        assert response.status_code == 500
        assert response.body() == {"review": REVIEW_FAILED}
        assert len(reviewer.calls) == 1

    async def test_review_without_provider(self) -> None:
        room = Room("r", executor=MockExecutionBackend())
        with pytest.raises(ReviewNotConfiguredError):
            await room.review_code()
        response = await room.handle_control(ApiRequest(event=ControlEvent.CODE_REVIEW))
        assert response.status_code == 500

    async def test_socket_review_answers_requester_only(self, room: Room, advance) -> None:
        a, b = MockConnection("a"), MockConnection("b")
        tasks = [await _join(room, a, advance), await _join(room, b, advance)]

        a.feed({"event": "code_review", "room": "test-room"})
        await advance(20)
        await room.drain()

        assert a.sent_messages()[-1] == {"event": "review_update", "update": "Looks good."}
        assert b.sent_events() == ["connection_update"]

        for conn in (a, b):
            conn.feed_close()
        await asyncio.gather(*tasks)

    async def test_control_span_recorded(
        self, room: Room, telemetry: MockTelemetryProvider
    ) -> None:
        await room.handle_control(ApiRequest(event=ControlEvent.CODE_SAVE))
        spans = telemetry.get_spans(SpanKind.ROOM_CONTROL)
        assert spans[0].attributes[Attr.CONTROL_EVENT] == "code_save"
        assert spans[0].room_id == "test-room"


class TestLifecycle:
    async def test_info(self, room: Room) -> None:
        await room.buffer.insert(0, "abc")
        info = room.info()
        assert info.id == "test-room"
        assert info.state == RoomState.IDLE
        assert info.buffer_length == 3
        assert info.connection_count == 0

    async def test_close_disconnects_everyone(self, room: Room, advance) -> None:
        conns = [MockConnection() for _ in range(2)]
        tasks = [await _join(room, c, advance) for c in conns]
        await room.close()
        await asyncio.gather(*tasks)
        assert room.connection_count == 0
        assert all(c.closed for c in conns)
