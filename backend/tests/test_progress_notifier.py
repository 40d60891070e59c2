"""进度推送与项目房间测试"""

import asyncio

import pytest

from conftest import RecordingChannel, make_candidate

from hr_ats.models.queue import QueueStatus
from hr_ats.services.progress_notifier import ProgressNotifier, ProjectConnectionManager


class SlowChannel(RecordingChannel):
    """第一次投递比后续投递慢"""

    def __init__(self):
        super().__init__()
        self.first = True

    async def emit_to_project(self, project_id, event_name, payload):
        if self.first:
            self.first = False
            await asyncio.sleep(0.01)
        await super().emit_to_project(project_id, event_name, payload)


class FailingChannel:
    def __init__(self):
        self.attempts = 0

    async def emit_to_project(self, project_id, event_name, payload):
        self.attempts += 1
        raise ConnectionError("socket closed")


class FakeWebSocket:
    def __init__(self, broken: bool = False):
        self.broken = broken
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("connection lost")
        self.sent.append(message)


class TestProgressNotifier:
    """发出即返回的事件投递"""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order_per_project(self):
        channel = SlowChannel()
        notifier = ProgressNotifier(channel=channel)

        notifier.analysis_started("P1", "c1")
        notifier.analysis_completed("P1", make_candidate("c1"))
        notifier.queue_progress("P1", QueueStatus(total=1, processed=1), completed=True)
        await notifier.flush()

        assert [p["type"] for p in channel.payloads("P1")] == [
            "analysis_started", "analysis_completed", "queue_completed",
        ]

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_reach_caller(self):
        channel = FailingChannel()
        notifier = ProgressNotifier(channel=channel)

        notifier.analysis_error("P1", "c1", "boom")
        notifier.queue_cancelled("P1")
        await notifier.flush()

        assert channel.attempts == 2

    @pytest.mark.asyncio
    async def test_payload_uses_camel_case(self):
        channel = RecordingChannel()
        notifier = ProgressNotifier(channel=channel)

        notifier.queue_progress("P1", QueueStatus(total=3, processed=1, remaining=2, percent_complete=33))
        await notifier.flush()

        project_id, event_name, payload = channel.events[0]
        assert event_name == "analysisUpdate"
        assert payload["projectId"] == "P1"
        assert payload["progress"]["percentComplete"] == 33
        assert "timestamp" in payload

    def test_notify_without_running_loop_is_dropped(self):
        channel = RecordingChannel()
        notifier = ProgressNotifier(channel=channel)

        notifier.analysis_started("P1", "c1")

        assert channel.events == []

    @pytest.mark.asyncio
    async def test_notify_without_channel(self):
        notifier = ProgressNotifier()

        notifier.analysis_started("P1", "c1")
        await notifier.flush()


class TestProjectConnectionManager:
    """WebSocket 项目房间"""

    @pytest.mark.asyncio
    async def test_emit_only_to_project_room(self):
        manager = ProjectConnectionManager()
        in_room, other_room = FakeWebSocket(), FakeWebSocket()
        await manager.connect(in_room)
        manager.join("P1", in_room)
        manager.join("P2", other_room)

        await manager.emit_to_project("P1", "analysisUpdate", {"type": "queue_progress"})

        assert in_room.accepted
        assert in_room.sent == [{"event": "analysisUpdate", "data": {"type": "queue_progress"}}]
        assert other_room.sent == []

    @pytest.mark.asyncio
    async def test_broken_socket_removed_from_room(self):
        manager = ProjectConnectionManager()
        healthy, broken = FakeWebSocket(), FakeWebSocket(broken=True)
        manager.join("P1", healthy)
        manager.join("P1", broken)

        await manager.emit_to_project("P1", "analysisUpdate", {})

        assert manager.subscriber_count("P1") == 1
        assert len(healthy.sent) == 1

    def test_disconnect_leaves_all_rooms(self):
        manager = ProjectConnectionManager()
        socket = FakeWebSocket()
        manager.join("P1", socket)
        manager.join("P2", socket)

        manager.disconnect(socket)

        assert manager.subscriber_count("P1") == 0
        assert manager.rooms == {}
