"""
项目队列注册表与清理任务
- 限制同时跟踪的项目队列数量
- 定时清理超时 / 空闲队列
- 队列“被遗弃”时延迟清理，给新的入队请求留出恢复时间
- 监控进程内存，超过阈值时强制清理空闲队列
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set

import psutil

from hr_ats.core.config import (
    ABANDONED_QUEUE_GRACE_SECONDS,
    JANITOR_INTERVAL_SECONDS,
    MAX_PROJECT_QUEUES,
    MEMORY_CRITICAL_MB,
    MEMORY_EVICTION_BATCH,
    MEMORY_WARNING_MB,
    QUEUE_MAX_AGE_SECONDS,
)
from hr_ats.models.queue import ProjectQueue

logger = logging.getLogger(__name__)


def process_memory_mb() -> float:
    """当前进程常驻内存 (MB)"""
    return psutil.Process().memory_info().rss / (1024 * 1024)


class QueueRegistry:
    """项目队列注册表：projectId -> ProjectQueue"""

    def __init__(
        self,
        max_queues: int = MAX_PROJECT_QUEUES,
        max_age_seconds: float = QUEUE_MAX_AGE_SECONDS,
        sweep_interval_seconds: float = JANITOR_INTERVAL_SECONDS,
        eviction_grace_seconds: float = ABANDONED_QUEUE_GRACE_SECONDS,
        memory_warning_mb: float = MEMORY_WARNING_MB,
        memory_critical_mb: float = MEMORY_CRITICAL_MB,
        memory_eviction_batch: int = MEMORY_EVICTION_BATCH,
        memory_probe: Callable[[], float] = process_memory_mb,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.max_queues = max_queues
        self.max_age = timedelta(seconds=max_age_seconds)
        self.sweep_interval = sweep_interval_seconds
        self.eviction_grace = eviction_grace_seconds
        self.memory_warning_mb = memory_warning_mb
        self.memory_critical_mb = memory_critical_mb
        self.memory_eviction_batch = memory_eviction_batch
        self._memory_probe = memory_probe
        self._clock = clock

        self._queues: Dict[str, ProjectQueue] = {}
        self._scheduled: Dict[str, asyncio.TimerHandle] = {}
        self._janitor_task: Optional[asyncio.Task] = None
        # 所有仍在运行的工作协程，包括已被移除的队列的协程
        self._workers: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # 基本操作
    # ------------------------------------------------------------------

    def get(self, project_id: str) -> Optional[ProjectQueue]:
        return self._queues.get(project_id)

    def __contains__(self, project_id: str) -> bool:
        return project_id in self._queues

    def __len__(self) -> int:
        return len(self._queues)

    def queues(self) -> List[ProjectQueue]:
        return list(self._queues.values())

    def create(self, project_id: str, max_workers: int, company_id: Optional[str] = None) -> ProjectQueue:
        """创建项目队列；达到数量上限时先清理最早的非处理中队列"""
        if project_id in self._queues:
            return self._queues[project_id]

        if len(self._queues) >= self.max_queues:
            self._make_room()

        queue = ProjectQueue(
            project_id=project_id,
            max_workers=max(1, max_workers),
            company_id=company_id,
            created_at=self._clock(),
        )
        self._queues[project_id] = queue
        logger.info(f"[QueueRegistry] 项目 {project_id} 队列已创建，最大并发 {queue.max_workers}，当前队列数 {len(self._queues)}")
        return queue

    def _make_room(self) -> None:
        candidates = sorted(
            (q for q in self._queues.values() if not q.is_processing),
            key=lambda q: q.start_time or q.created_at,
        )
        for queue in candidates:
            if len(self._queues) < self.max_queues:
                break
            logger.warning(f"[QueueRegistry] 队列数量达到上限 {self.max_queues}，强制清理项目 {queue.project_id}")
            self.evict(queue.project_id, "队列数量达到上限")

        if len(self._queues) >= self.max_queues:
            logger.warning(f"[QueueRegistry] 所有 {len(self._queues)} 个队列都在处理中，暂时超出上限")

    def evict(self, project_id: str, reason: str) -> Optional[ProjectQueue]:
        """从注册表移除队列（已在运行的工作协程会处理完手上的任务后退出）"""
        self.cancel_scheduled_eviction(project_id)
        queue = self._queues.pop(project_id, None)
        if queue is not None:
            logger.info(
                f"[QueueRegistry] 清理项目 {project_id} 队列（{reason}），"
                f"已处理 {queue.processed_items}/{queue.total_items}，剩余队列数 {len(self._queues)}"
            )
        return queue

    def track_worker(self, task: asyncio.Task) -> None:
        """登记工作协程，队列被移除后 stop() 仍然能取消它"""
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    @property
    def running_workers(self) -> int:
        return len(self._workers)

    # ------------------------------------------------------------------
    # 延迟清理
    # ------------------------------------------------------------------

    def schedule_eviction(self, project_id: str, delay: Optional[float] = None) -> None:
        """队列被遗弃时，在宽限期后再清理；期间有新任务入队则取消"""
        queue = self._queues.get(project_id)
        if queue is None:
            return
        self.cancel_scheduled_eviction(project_id)
        delay = self.eviction_grace if delay is None else delay
        loop = asyncio.get_running_loop()
        self._scheduled[project_id] = loop.call_later(delay, self._evict_if_abandoned, project_id, queue)
        logger.info(f"[QueueRegistry] 项目 {project_id} 队列已无工作协程但仍有未处理任务，{delay} 秒后清理")

    def cancel_scheduled_eviction(self, project_id: str) -> None:
        handle = self._scheduled.pop(project_id, None)
        if handle is not None:
            handle.cancel()

    def _evict_if_abandoned(self, project_id: str, queue: ProjectQueue) -> None:
        self._scheduled.pop(project_id, None)
        # 期间队列可能已被替换或重新开始处理
        if self._queues.get(project_id) is not queue or not queue.is_idle:
            return
        self.evict(project_id, "被遗弃")

    # ------------------------------------------------------------------
    # 定时清理
    # ------------------------------------------------------------------

    def sweep(self) -> List[str]:
        """清理超时和空闲的队列，返回被清理的项目 ID"""
        now = self._clock()
        evicted = []
        for queue in list(self._queues.values()):
            if now - queue.created_at > self.max_age:
                self.evict(queue.project_id, "超过最大存活时间")
                evicted.append(queue.project_id)
            elif queue.is_idle and not queue.items:
                self.evict(queue.project_id, "空闲")
                evicted.append(queue.project_id)

        evicted.extend(self.check_memory())
        return evicted

    def check_memory(self) -> List[str]:
        """检查进程内存：超过告警阈值记录日志，超过临界阈值强制清理最早的空闲队列"""
        try:
            memory_mb = self._memory_probe()
        except Exception as e:
            logger.warning(f"[QueueRegistry] 读取进程内存失败: {e}")
            return []

        if memory_mb >= self.memory_critical_mb:
            idle = sorted(
                (q for q in self._queues.values() if q.is_idle),
                key=lambda q: q.start_time or q.created_at,
            )[: self.memory_eviction_batch]
            logger.warning(
                f"[QueueRegistry] 内存占用 {memory_mb:.0f}MB 超过临界值 {self.memory_critical_mb}MB，"
                f"强制清理 {len(idle)} 个空闲队列"
            )
            for queue in idle:
                self.evict(queue.project_id, "内存压力")
            return [q.project_id for q in idle]

        if memory_mb >= self.memory_warning_mb:
            logger.warning(f"[QueueRegistry] 内存占用 {memory_mb:.0f}MB 超过告警值 {self.memory_warning_mb}MB，当前队列数 {len(self._queues)}")
        return []

    async def run_janitor(self) -> None:
        """后台清理循环"""
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                evicted = self.sweep()
                if evicted:
                    logger.info(f"[QueueRegistry] 定时清理完成，共清理 {len(evicted)} 个队列")
            except Exception as e:
                logger.error(f"[QueueRegistry] 定时清理出错: {e}", exc_info=True)

    def start(self) -> None:
        if self._janitor_task is None or self._janitor_task.done():
            self._janitor_task = asyncio.get_running_loop().create_task(self.run_janitor())
            logger.info(f"[QueueRegistry] 清理任务已启动，间隔 {self.sweep_interval} 秒")

    async def stop(self) -> None:
        """停止清理任务并取消所有队列的工作协程"""
        if self._janitor_task is not None:
            self._janitor_task.cancel()
            try:
                await self._janitor_task
            except asyncio.CancelledError:
                pass
            self._janitor_task = None

        for handle in self._scheduled.values():
            handle.cancel()
        self._scheduled.clear()

        workers = list(self._workers)
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._queues.clear()
        self._workers.clear()
        logger.info("[QueueRegistry] 已停止")
