"""
分析队列数据模型
- 候选人 / 项目快照：入队时冗余保存，工作协程不再回查数据库
- WorkItem / ProjectQueue：只存在于进程内存，进程重启即丢失
- QueueStatus / ProgressEvent：推送给前端的数据结构（camelCase）
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from hr_ats.core.config import UNKNOWN_CANDIDATE_NAME


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CandidateSnapshot(_WireModel):
    """候选人快照"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    project_id: Optional[str] = None
    name: str = UNKNOWN_CANDIDATE_NAME
    email: Optional[str] = None
    phone: Optional[str] = None
    file_name: Optional[str] = None
    # 简历全文只用于分析，不随事件推送
    extracted_text: str = Field(default="", exclude=True)
    score: float = 0
    previous_score: Optional[float] = None
    status: str = "pending"
    summary: Optional[str] = None
    extracted_data: Optional[Dict[str, Any]] = None
    ranking: int = 0


class ProjectSnapshot(_WireModel):
    """项目快照"""
    id: str
    company_id: Optional[str] = None
    name: Optional[str] = None
    job_description: str = ""
    custom_prompt: Optional[str] = None


@dataclass
class WorkItem:
    """待分析的 (候选人, 项目) 对"""
    candidate_id: str
    candidate: CandidateSnapshot
    project: ProjectSnapshot
    enqueued_at: datetime = field(default_factory=datetime.now)


@dataclass
class ProjectQueue:
    """单个项目的分析队列"""
    project_id: str
    max_workers: int
    company_id: Optional[str] = None
    items: Deque[WorkItem] = field(default_factory=deque)
    is_processing: bool = False
    total_items: int = 0
    processed_items: int = 0
    active_workers: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    start_time: Optional[datetime] = None
    # 持有工作协程的强引用，防止被 GC 回收
    workers: Set[asyncio.Task] = field(default_factory=set)

    @property
    def remaining(self) -> int:
        return len(self.items)

    @property
    def is_idle(self) -> bool:
        return not self.is_processing and self.active_workers == 0

    @property
    def is_drained(self) -> bool:
        return self.is_idle and not self.items and self.processed_items >= self.total_items


class QueueStatus(_WireModel):
    """队列进度"""
    is_processing: bool = False
    total: int = 0
    processed: int = 0
    remaining: int = 0
    percent_complete: int = 0
    estimated_time_remaining: Optional[str] = None
    active_workers: int = 0
    max_workers: int = 0


EventType = Literal[
    "analysis_started",
    "analysis_completed",
    "analysis_error",
    "queue_progress",
    "queue_completed",
    "queue_cancelled",
]


class ProgressEvent(_WireModel):
    """推送到项目房间的进度事件"""
    type: EventType
    project_id: str
    timestamp: datetime = Field(default_factory=datetime.now)
    candidate_id: Optional[str] = None
    candidate: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    progress: Optional[QueueStatus] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
