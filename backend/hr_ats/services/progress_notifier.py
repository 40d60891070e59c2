"""
进度推送服务
- ProjectConnectionManager: 按项目划分的 WebSocket 房间
- ProgressNotifier: 核心流水线使用的推送接口，"发出即返回"，投递失败不会影响调用方
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from hr_ats.models.queue import CandidateSnapshot, ProgressEvent, QueueStatus

logger = logging.getLogger(__name__)

ANALYSIS_UPDATE_EVENT = "analysisUpdate"


class ProjectConnectionManager:
    """项目房间管理：projectId -> WebSocket 集合"""

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info(f"[WebSocket] 客户端已连接: {id(websocket)}")

    def join(self, project_id: str, websocket: WebSocket) -> None:
        self.rooms.setdefault(project_id, set()).add(websocket)
        logger.info(f"[WebSocket] 客户端 {id(websocket)} 加入项目房间: {project_id}")

    def leave(self, project_id: str, websocket: WebSocket) -> None:
        clients = self.rooms.get(project_id)
        if not clients:
            return
        clients.discard(websocket)
        if not clients:
            del self.rooms[project_id]
        logger.info(f"[WebSocket] 客户端 {id(websocket)} 离开项目房间: {project_id}")

    def disconnect(self, websocket: WebSocket) -> None:
        for project_id in [pid for pid, clients in self.rooms.items() if websocket in clients]:
            self.leave(project_id, websocket)
        logger.info(f"[WebSocket] 客户端已断开: {id(websocket)}")

    def subscriber_count(self, project_id: str) -> int:
        return len(self.rooms.get(project_id, ()))

    async def emit_to_project(self, project_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        """向项目房间内所有客户端推送；发送失败的连接直接移出房间"""
        clients = list(self.rooms.get(project_id, ()))
        if not clients:
            return

        message = {"event": event_name, "data": payload}
        for websocket in clients:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.warning(f"[WebSocket] 推送到客户端 {id(websocket)} 失败，移出房间: {e}")
                self.leave(project_id, websocket)


class ProgressNotifier:
    """
    进度通知器

    notify() 是同步方法，只负责创建投递任务。同一项目的事件按调用顺序串行投递，
    不同项目之间互不影响。
    """

    def __init__(self, channel: Optional[ProjectConnectionManager] = None, event_name: str = ANALYSIS_UPDATE_EVENT):
        self.channel = channel
        self.event_name = event_name
        self._tails: Dict[str, asyncio.Task] = {}
        self._pending: Set[asyncio.Task] = set()

    def notify(self, project_id: str, event: ProgressEvent) -> None:
        if self.channel is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[Notifier] 没有运行中的事件循环，丢弃事件 {event.type}")
            return

        payload = event.to_payload()
        previous = self._tails.get(project_id)
        task = loop.create_task(self._deliver(project_id, payload, previous))
        self._tails[project_id] = task
        self._pending.add(task)
        task.add_done_callback(lambda t, pid=project_id: self._on_delivered(pid, t))

    def _on_delivered(self, project_id: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if self._tails.get(project_id) is task:
            del self._tails[project_id]

    async def _deliver(self, project_id: str, payload: Dict[str, Any], previous: Optional[asyncio.Task]) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        try:
            await self.channel.emit_to_project(project_id, self.event_name, payload)
        except Exception as e:
            logger.warning(f"[Notifier] 项目 {project_id} 的 {payload.get('type')} 事件投递失败: {e}")

    async def flush(self) -> None:
        """等待所有已发出的事件投递完成（关闭服务和测试时使用）"""
        while self._pending:
            await asyncio.wait(list(self._pending))

    # ------------------------------------------------------------------
    # 便捷方法
    # ------------------------------------------------------------------

    def analysis_started(self, project_id: str, candidate_id: str) -> None:
        self.notify(project_id, ProgressEvent(
            type="analysis_started", project_id=project_id, candidate_id=candidate_id,
        ))

    def analysis_completed(self, project_id: str, candidate: CandidateSnapshot) -> None:
        self.notify(project_id, ProgressEvent(
            type="analysis_completed",
            project_id=project_id,
            candidate_id=candidate.id,
            candidate=candidate.model_dump(mode="json", by_alias=True),
        ))

    def analysis_error(self, project_id: str, candidate_id: str, error: str) -> None:
        self.notify(project_id, ProgressEvent(
            type="analysis_error", project_id=project_id, candidate_id=candidate_id, error=error,
        ))

    def queue_progress(self, project_id: str, status: QueueStatus, completed: bool = False) -> None:
        self.notify(project_id, ProgressEvent(
            type="queue_completed" if completed else "queue_progress",
            project_id=project_id,
            progress=status,
        ))

    def queue_cancelled(self, project_id: str) -> None:
        self.notify(project_id, ProgressEvent(type="queue_cancelled", project_id=project_id))
