"""
测试公共配置：外部协作方（数据库、LLM 网关、WebSocket）的假实现
"""

import asyncio
import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest

from hr_ats.core.analysis_invoker import AnalysisInvoker
from hr_ats.core.key_pool import KeyPoolManager
from hr_ats.core.model_resolver import ModelResolver
from hr_ats.models.queue import CandidateSnapshot, ProjectSnapshot
from hr_ats.services.analysis_queue import AnalysisQueueService
from hr_ats.services.candidate_analysis import CandidateAnalysisService
from hr_ats.services.progress_notifier import ProgressNotifier
from hr_ats.services.queue_registry import QueueRegistry

CV_TEXT = "张三\n高级 Python 工程师，8 年后端开发经验，熟悉 FastAPI 与 PostgreSQL。"
JOB_DESCRIPTION = "招聘高级后端工程师，要求 Python、异步编程与数据库经验。"


def valid_response(score: int = 82, name: str = "张三", email: str = "zhangsan@example.com") -> str:
    return json.dumps({
        "score": score,
        "summary": "经验匹配度高",
        "strengths": ["Python", "FastAPI"],
        "weaknesses": ["缺少管理经验"],
        "recommendations": ["安排技术面试"],
        "hrDecision": {"recommendation": "INTERVIEW", "confidence": 80, "reasoning": "技术栈匹配", "priority": "HIGH"},
        "skillsMatch": {"technical": 85, "experience": 80, "cultural": 70, "overall": 80},
        "risks": [],
        "extractedData": {"name": name, "email": email, "phone": "13800000000", "skills": ["Python"]},
    }, ensure_ascii=False)


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeCredentialStore:
    """Key 存储：按公司划分，company_id=None 为全局 Key"""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None, fail: bool = False, fail_usage: bool = False):
        self.records = records or []
        self.fail = fail
        self.fail_usage = fail_usage
        self.usage: Dict[str, int] = {}

    async def list_active(self, company_id: Optional[str] = None):
        if self.fail:
            raise ConnectionError("database unavailable")
        if company_id is None:
            return list(self.records)
        return [r for r in self.records if r.get("company_id") == company_id]

    async def list_active_global(self):
        if self.fail:
            raise ConnectionError("database unavailable")
        return [r for r in self.records if r.get("company_id") is None]

    async def increment_usage(self, api_key: str):
        if self.fail_usage:
            raise ConnectionError("database unavailable")
        self.usage[api_key] = self.usage.get(api_key, 0) + 1


class FakeModelConfigStore:
    def __init__(self, orders: Optional[Dict[str, List[str]]] = None, fail: bool = False):
        self.orders = orders or {}
        self.fail = fail

    async def get_fallback_order(self, credential_id: str) -> List[str]:
        if self.fail:
            raise ConnectionError("database unavailable")
        return self.orders.get(credential_id, [])


class FakePersistence:
    """分析结果存储，记录所有调用"""

    def __init__(self):
        self.analyses: List[tuple] = []
        self.updates: List[tuple] = []
        self.rankings: List[str] = []

    async def save_analysis(self, project_id, candidate_id, result):
        self.analyses.append((project_id, candidate_id, result))
        return f"analysis-{len(self.analyses)}"

    async def update_candidate_snapshot(self, candidate_id, fields):
        self.updates.append((candidate_id, dict(fields)))

    async def update_rankings(self, project_id):
        self.rankings.append(project_id)
        return 0


class FakeModelConfigDatabase:
    """只模拟 api_key_model_configs 表的 DatabaseManager"""

    COLUMNS = ("primary_model", "fallback_model_1", "fallback_model_2", "fallback_model_3", "notes")

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.statements: List[str] = []

    def _active(self, api_key_id):
        for row in self.rows:
            if row["api_key_id"] == api_key_id and row["is_active"]:
                return row
        return None

    async def execute_one(self, sql, params=None):
        row = self._active(params[0])
        return dict(row) if row else None

    async def execute_update(self, sql, params=None):
        self.statements.append(" ".join(sql.split()))
        if "INSERT INTO" in sql:
            api_key_id, *values = params
            self.rows.append({"api_key_id": api_key_id, "is_active": True, **dict(zip(self.COLUMNS, values))})
            return 1

        row = self._active(params[0])
        if row is None:
            return 0
        if "is_active = FALSE" in sql:
            row["is_active"] = False
        else:
            row.update(zip(self.COLUMNS, params[1:]))
        return 1


class GatewayError(Exception):
    """模拟 openai 风格的 HTTP 异常"""

    def __init__(self, status_code: int, message: str = "gateway error"):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code


class FakeMessage:
    def __init__(self, content: str, headers: Optional[Dict[str, str]] = None):
        self.content = content
        self.response_metadata = {"headers": headers or {}}


class FakeLLM:
    def __init__(self, gateway: "FakeGateway", api_key: str, model: str):
        self.gateway = gateway
        self.api_key = api_key
        self.model = model

    async def ainvoke(self, messages):
        gateway = self.gateway
        gateway.calls.append((self.api_key, self.model))
        if gateway.on_call is not None:
            gateway.on_call(self.api_key, self.model)

        gateway.in_flight += 1
        gateway.max_in_flight = max(gateway.max_in_flight, gateway.in_flight)
        try:
            await asyncio.sleep(0)
            if gateway.gate is not None:
                await gateway.gate.wait()
        finally:
            gateway.in_flight -= 1

        prompt = messages[0].content
        if gateway.fail_marker and gateway.fail_marker in prompt:
            raise GatewayError(500, "upstream failure")

        outcome = gateway.outcomes.get(self.model, gateway.default)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FakeMessage):
            return outcome
        return FakeMessage(outcome)


class FakeGateway:
    """
    LLM 工厂：按模型名返回预设结果（字符串、FakeMessage 或异常）

    用作 AnalysisInvoker 的 llm_factory。
    - gate: 设置后每次调用都等待该事件
    - fail_marker: Prompt 中包含该文本时调用失败
    - on_call: 每次调用时的回调 (api_key, model)
    """

    def __init__(self, default: Any = None, outcomes: Optional[Dict[str, Any]] = None):
        self.default = valid_response() if default is None else default
        self.outcomes = outcomes or {}
        self.calls: List[tuple] = []
        self.base_urls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail_marker: Optional[str] = None
        self.on_call = None
        self.in_flight = 0
        self.max_in_flight = 0

    def __call__(self, api_key: str, base_url: str, model: str, **kwargs):
        self.base_urls.append(base_url)
        return FakeLLM(self, api_key, model)


class RecordingChannel:
    """进度推送通道：记录每个项目收到的事件"""

    def __init__(self):
        self.events: List[tuple] = []

    async def emit_to_project(self, project_id: str, event_name: str, payload: Dict[str, Any]):
        self.events.append((project_id, event_name, payload))

    def payloads(self, project_id: Optional[str] = None, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            payload for pid, _, payload in self.events
            if (project_id is None or pid == project_id)
            and (event_type is None or payload["type"] == event_type)
        ]


def make_candidate(candidate_id: str, project_id: str = "P1", text: str = CV_TEXT, **kwargs) -> CandidateSnapshot:
    return CandidateSnapshot(id=candidate_id, project_id=project_id, extracted_text=text, **kwargs)


def make_project(project_id: str = "P1", company_id: Optional[str] = "C1", **kwargs) -> ProjectSnapshot:
    return ProjectSnapshot(id=project_id, company_id=company_id, job_description=JOB_DESCRIPTION, **kwargs)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """等待条件成立（轮询事件循环）"""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def notifier(channel):
    return ProgressNotifier(channel=channel)


@pytest.fixture
def persistence():
    return FakePersistence()


@pytest.fixture
def gateway():
    return FakeGateway()


def build_pipeline(
    keys: List[str],
    gateway: FakeGateway,
    persistence: FakePersistence,
    notifier: ProgressNotifier,
    registry: Optional[QueueRegistry] = None,
    credential_store: Optional[FakeCredentialStore] = None,
    **registry_options,
):
    """用假协作方组装完整的分析流水线（零延迟）"""
    key_pool = KeyPoolManager(credential_store=credential_store, fallback_keys=keys)
    invoker = AnalysisInvoker(
        key_pool=key_pool,
        model_resolver=ModelResolver(),
        credential_store=credential_store,
        llm_factory=gateway,
    )
    registry = registry or QueueRegistry(memory_probe=lambda: 0.0, **registry_options)
    candidate_analysis = CandidateAnalysisService(invoker, persistence, notifier)
    queue = AnalysisQueueService(
        candidate_analysis=candidate_analysis,
        key_pool=key_pool,
        registry=registry,
        notifier=notifier,
        delay_between_requests=0,
        jitter_range=(0, 0),
    )
    return queue, key_pool, registry
