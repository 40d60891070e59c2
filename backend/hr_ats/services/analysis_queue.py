"""
项目分析队列服务
每个项目一个 FIFO 队列，按可用 Key 数量启动若干并发工作协程。
工作协程在每个任务前随机等待 0.5-1.5 秒，任务后固定等待 1.5 秒，避免突发请求触发限流。
"""

import asyncio
import logging
import math
import random
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from hr_ats.core.config import (
    DELAY_BETWEEN_REQUESTS,
    JITTER_MAX_SECONDS,
    JITTER_MIN_SECONDS,
)
from hr_ats.core.key_pool import KeyPoolManager
from hr_ats.models.queue import (
    CandidateSnapshot,
    ProjectQueue,
    ProjectSnapshot,
    QueueStatus,
    WorkItem,
)
from hr_ats.services.candidate_analysis import CandidateAnalysisService
from hr_ats.services.progress_notifier import ProgressNotifier
from hr_ats.services.queue_registry import QueueRegistry

logger = logging.getLogger(__name__)

CALCULATING_ESTIMATE = "计算中..."


def format_duration(seconds: float) -> str:
    """把剩余时间格式化为 秒 / 分钟 / 小时+分钟"""
    if seconds < 60:
        return f"{math.ceil(seconds)} 秒"
    if seconds < 3600:
        return f"{math.ceil(seconds / 60)} 分钟"
    hours = int(seconds // 3600)
    minutes = math.ceil((seconds % 3600) / 60)
    return f"{hours} 小时 {minutes} 分钟"


def estimate_remaining_time(queue: ProjectQueue, now: Optional[datetime] = None) -> str:
    """预计剩余时间 = 平均每个任务耗时 * 剩余任务数"""
    if queue.start_time is None or queue.processed_items == 0:
        return CALCULATING_ESTIMATE
    now = now or datetime.now()
    elapsed = (now - queue.start_time).total_seconds()
    per_item = elapsed / queue.processed_items
    return format_duration(per_item * queue.remaining)


def build_queue_status(queue: ProjectQueue, now: Optional[datetime] = None) -> QueueStatus:
    percent = round(queue.processed_items / queue.total_items * 100) if queue.total_items > 0 else 0
    return QueueStatus(
        is_processing=queue.is_processing,
        total=queue.total_items,
        processed=queue.processed_items,
        remaining=queue.remaining,
        percent_complete=percent,
        estimated_time_remaining=estimate_remaining_time(queue, now),
        active_workers=queue.active_workers,
        max_workers=queue.max_workers,
    )


class AnalysisQueueService:
    """项目分析队列服务"""

    def __init__(
        self,
        candidate_analysis: CandidateAnalysisService,
        key_pool: KeyPoolManager,
        registry: QueueRegistry,
        notifier: ProgressNotifier,
        delay_between_requests: float = DELAY_BETWEEN_REQUESTS,
        jitter_range: Tuple[float, float] = (JITTER_MIN_SECONDS, JITTER_MAX_SECONDS),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.candidate_analysis = candidate_analysis
        self.key_pool = key_pool
        self.registry = registry
        self.notifier = notifier
        self.delay_between_requests = delay_between_requests
        self.jitter_range = jitter_range
        self._sleep = sleep

    async def enqueue(self, candidate_id: str, candidate: CandidateSnapshot, project: ProjectSnapshot) -> None:
        """
        把候选人加入项目的分析队列

        首次入队时创建队列，最大并发数 = max(1, 该公司可用 Key 数量)。
        """
        project_id = project.id

        if self.registry.get(project_id) is None:
            credentials = await self.key_pool.list_usable_credentials(project.company_id)
            # await 期间可能已有其他请求创建了队列
            if self.registry.get(project_id) is None:
                if not credentials:
                    logger.warning(f"[AnalysisQueue] 项目 {project_id} 当前没有可用 Key，仍以 1 个并发创建队列")
                self.registry.create(project_id, max(1, len(credentials)), project.company_id)

        queue = self.registry.get(project_id)
        queue.items.append(WorkItem(candidate_id=candidate_id, candidate=candidate, project=project))
        queue.total_items += 1
        self.registry.cancel_scheduled_eviction(project_id)

        logger.info(f"[AnalysisQueue] 候选人 {candidate_id} 已加入项目 {project_id} 队列，队列长度 {queue.remaining}")

        self.emit_queue_update(project_id)
        self.start_workers_if_needed(project_id)

    def start_workers_if_needed(self, project_id: str) -> int:
        """按需启动工作协程，返回新启动的数量"""
        queue = self.registry.get(project_id)
        if queue is None or not queue.items:
            return 0

        needed = min(queue.max_workers - queue.active_workers, queue.remaining)
        if needed <= 0:
            return 0

        if queue.active_workers == 0:
            queue.is_processing = True
            if queue.start_time is None:
                queue.start_time = datetime.now()
            logger.info(
                f"[AnalysisQueue] 项目 {project_id} 开始并行处理 {queue.remaining} 个任务，最大并发 {queue.max_workers}"
            )
            self.emit_queue_update(project_id)

        # 先一次性增加计数，再创建协程，避免检查和启动之间的竞争
        first_worker_id = queue.active_workers
        queue.active_workers += needed

        loop = asyncio.get_running_loop()
        for offset in range(needed):
            task = loop.create_task(self._run_worker(queue, first_worker_id + offset))
            queue.workers.add(task)
            self.registry.track_worker(task)
            task.add_done_callback(queue.workers.discard)

        logger.info(f"[AnalysisQueue] 项目 {project_id} 启动 {needed} 个工作协程，当前活跃 {queue.active_workers}")
        return needed

    async def _run_worker(self, queue: ProjectQueue, worker_id: int) -> None:
        project_id = queue.project_id
        logger.info(f"[AnalysisQueue] 工作协程 {worker_id} 启动（项目 {project_id}）")

        try:
            while queue.items:
                item = queue.items.popleft()

                try:
                    await self._sleep(random.uniform(*self.jitter_range))
                    await self.candidate_analysis.analyze_and_persist(item.candidate, item.project)
                    logger.info(
                        f"[AnalysisQueue] 工作协程 {worker_id} 完成候选人 {item.candidate_id}，"
                        f"进度 {queue.processed_items + 1}/{queue.total_items}"
                    )
                except Exception as e:
                    logger.error(f"[AnalysisQueue] 工作协程 {worker_id} 处理候选人 {item.candidate_id} 失败: {e}")
                    await self.candidate_analysis.mark_failed(item.candidate, item.project, e)

                queue.processed_items += 1
                self._emit_for(queue)

                await self._sleep(self.delay_between_requests)
        finally:
            queue.active_workers -= 1
            logger.info(f"[AnalysisQueue] 工作协程 {worker_id} 结束（项目 {project_id}），剩余活跃 {queue.active_workers}")
            if queue.active_workers == 0:
                queue.is_processing = False
                self._on_workers_finished(queue)

    def _on_workers_finished(self, queue: ProjectQueue) -> None:
        project_id = queue.project_id
        if self.registry.get(project_id) is not queue:
            return

        if queue.is_drained:
            logger.info(f"[AnalysisQueue] 项目 {project_id} 所有任务处理完成")
            self.emit_queue_update(project_id, completed=True)
            return

        # 还有未处理的任务或计数不一致：延迟清理，等待新的入队恢复处理
        self.emit_queue_update(project_id)
        self.registry.schedule_eviction(project_id)

    def _emit_for(self, queue: ProjectQueue) -> None:
        # 队列已被取消或替换时不再推送
        if self.registry.get(queue.project_id) is queue:
            self.emit_queue_update(queue.project_id)

    def emit_queue_update(self, project_id: str, completed: bool = False) -> None:
        """推送队列进度；completed=True 时推送完成事件并从注册表移除队列"""
        queue = self.registry.get(project_id)
        if queue is None:
            return

        self.notifier.queue_progress(project_id, build_queue_status(queue), completed=completed)

        if completed:
            self.registry.evict(project_id, "处理完成")

    def status(self, project_id: str) -> QueueStatus:
        """查询项目队列状态，不存在时返回全零状态"""
        queue = self.registry.get(project_id)
        if queue is None:
            return QueueStatus()
        return build_queue_status(queue)

    def cancel(self, project_id: str) -> bool:
        """
        取消项目队列

        清空待处理任务并移除队列；正在处理的任务会执行完毕，不会被中断。
        """
        queue = self.registry.get(project_id)
        if queue is None:
            return False

        dropped = queue.remaining
        queue.items.clear()
        queue.is_processing = False
        self.registry.evict(project_id, "已取消")
        self.notifier.queue_cancelled(project_id)

        logger.info(f"[AnalysisQueue] 项目 {project_id} 队列已取消，丢弃 {dropped} 个待处理任务")
        return True
