"""
项目分析队列 API 路由
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from hr_ats.api.deps import get_container
from hr_ats.core.container import AppContainer
from hr_ats.models.queue import QueueStatus
from hr_ats.models.schemas import QueueCancelResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["分析队列"])


@router.get("/{project_id}/queue-status", response_model=QueueStatus, response_model_by_alias=True)
async def get_queue_status(project_id: str, container: AppContainer = Depends(get_container)):
    """查询项目分析队列进度；项目没有队列时返回全零状态"""
    return container.analysis_queue.status(project_id)


@router.delete("/{project_id}/queue", response_model=QueueCancelResponse)
async def cancel_queue(project_id: str, container: AppContainer = Depends(get_container)):
    """取消项目分析队列，正在分析的候选人会完成当前任务"""
    if not container.analysis_queue.cancel(project_id):
        raise HTTPException(
            status_code=404,
            detail={"error": "QueueNotFound", "message": f"项目 {project_id} 没有进行中的分析队列"},
        )

    logger.info(f"项目 {project_id} 的分析队列已被取消")
    return QueueCancelResponse(success=True, message="分析队列已取消")
