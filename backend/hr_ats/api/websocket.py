"""
项目进度 WebSocket
客户端发送 {"event": "joinProject" | "leaveProject", "projectId": "..."} 加入/离开项目房间，
之后会收到 {"event": "analysisUpdate", "data": {...}} 推送。
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["实时进度"])

JOIN_EVENT = "joinProject"
LEAVE_EVENT = "leaveProject"


@router.websocket("/ws/projects")
async def project_updates(websocket: WebSocket):
    connections = websocket.app.state.container.connections
    await connections.connect(websocket)

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                continue

            event = message.get("event")
            project_id = message.get("projectId")
            if not project_id:
                await websocket.send_json({"event": "error", "data": {"message": "缺少 projectId"}})
                continue

            if event == JOIN_EVENT:
                connections.join(str(project_id), websocket)
                await websocket.send_json({"event": "joinedProject", "data": {"projectId": project_id}})
            elif event == LEAVE_EVENT:
                connections.leave(str(project_id), websocket)
            else:
                logger.debug(f"[WebSocket] 忽略未知事件: {event}")

    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(websocket)
