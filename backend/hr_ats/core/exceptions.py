"""
分析流水线异常定义
"""

from typing import Optional


class AnalysisError(Exception):
    """分析流水线基础异常类"""
    pass


class NoAvailableCredentialError(AnalysisError):
    """没有可用的 API Key（额度耗尽或未配置）"""

    def __init__(self, scope: Optional[str] = None):
        self.scope = scope
        target = f"公司 {scope}" if scope else "全局"
        super().__init__(f"没有可用的 LLM API Key（范围: {target}）")


class AnalysisInvocationError(AnalysisError):
    """调用 LLM 网关失败，且模型回退列表已用尽"""

    def __init__(self, message: str, model: Optional[str] = None, status_code: Optional[int] = None):
        self.model = model
        self.status_code = status_code
        super().__init__(message)


class CandidateNotFoundError(AnalysisError):
    """候选人或项目不存在"""
    pass


def extract_status_code(exc: BaseException) -> Optional[int]:
    """从网关异常中取出 HTTP 状态码（openai / httpx 异常均适用）"""
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None
