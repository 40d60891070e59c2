"""
简历分析调用器
选 Key -> 解析模型列表 -> 调用 LLM 网关 -> 解析结构化结果。
模型回退只在同一个 Key 的模型列表内进行；换 Key 由队列在不同候选人之间完成。
"""

import logging
from typing import Callable, List, Optional

from langchain_core.messages import HumanMessage

from hr_ats.core.exceptions import (
    AnalysisInvocationError,
    NoAvailableCredentialError,
    extract_status_code,
)
from hr_ats.core.key_pool import KeyPoolManager
from hr_ats.core.llms import create_llm_from_config, resolve_base_url
from hr_ats.core.model_resolver import ModelResolver
from hr_ats.core.prompt import build_analysis_prompt
from hr_ats.core.response_parser import parse_analysis_response
from hr_ats.models.analysis import AnalysisResult
from hr_ats.models.credential import Credential

logger = logging.getLogger(__name__)

RATE_LIMIT_REMAINING_HEADER = "x-ratelimit-remaining"


class AnalysisInvoker:
    """调用外部 LLM 为简历打分"""

    def __init__(
        self,
        key_pool: KeyPoolManager,
        model_resolver: ModelResolver,
        credential_store=None,
        llm_factory: Callable = create_llm_from_config,
    ):
        self.key_pool = key_pool
        self.model_resolver = model_resolver
        self.credential_store = credential_store
        self.llm_factory = llm_factory

    async def analyze(
        self,
        cv_text: str,
        job_description: str,
        custom_prompt: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> AnalysisResult:
        """
        分析一份简历

        Args:
            cv_text: 简历文本
            job_description: 岗位描述
            custom_prompt: 项目自定义 Prompt（可选）
            scope: 公司 ID，用于选择 Key

        Returns:
            AnalysisResult: 分析结果（解析失败时为兜底结果）

        Raises:
            NoAvailableCredentialError: 没有可用的 Key
            AnalysisInvocationError: 所有模型都调用失败
        """
        credentials = await self.key_pool.list_usable_credentials(scope)
        if not credentials:
            raise NoAvailableCredentialError(scope)

        credential = self.key_pool.next_available(credentials) or credentials[0]
        models = await self.model_resolver.resolve(credential.id)
        prompt = build_analysis_prompt(cv_text, job_description, custom_prompt)

        logger.debug(f"[Invoker] Prompt 长度: {len(prompt)} 字符，候选模型: {models}")
        return await self._invoke(credential, models, 0, prompt, cv_text)

    async def _invoke(
        self,
        credential: Credential,
        models: List[str],
        index: int,
        prompt: str,
        cv_text: str,
    ) -> AnalysisResult:
        """用 models[index] 调用网关，失败时递归尝试下一个模型"""
        model = models[index]
        logger.info(f"[Invoker] 使用 Key {credential.key_preview} 调用模型 {model}")

        try:
            response = await self._call_gateway(credential, model, prompt)
        except Exception as e:
            status_code = extract_status_code(e)
            logger.error(
                f"[Invoker] Key {credential.key_preview} 调用 {model} 失败"
                f"（HTTP {status_code if status_code is not None else '-'}）: {e}"
            )
            self.key_pool.mark_failed(credential, status_code)

            if index + 1 < len(models):
                logger.warning(f"[Invoker] {model} 失败，回退到 {models[index + 1]}")
                return await self._invoke(credential, models, index + 1, prompt, cv_text)

            raise AnalysisInvocationError(
                f"AI 分析失败: {e}", model=model, status_code=status_code
            ) from e

        self.key_pool.mark_used(credential)
        self._inspect_rate_limit(credential, response)
        await self._report_usage(credential)

        ai_response = response.content if isinstance(response.content, str) else str(response.content)
        logger.debug(f"[Invoker] 收到模型响应: {ai_response[:200]}...")
        return parse_analysis_response(ai_response, cv_text)

    async def _call_gateway(self, credential: Credential, model: str, prompt: str):
        llm = self.llm_factory(
            api_key=credential.api_key,
            base_url=resolve_base_url(credential.provider),
            model=model,
        )
        return await llm.ainvoke([HumanMessage(content=prompt)])

    def _inspect_rate_limit(self, credential: Credential, response) -> None:
        metadata = getattr(response, "response_metadata", None) or {}
        headers = metadata.get("headers") or {}
        raw = headers.get(RATE_LIMIT_REMAINING_HEADER)
        if raw is None:
            return
        try:
            remaining = int(raw)
        except (TypeError, ValueError):
            return
        self.key_pool.record_rate_limit(credential, remaining)

    async def _report_usage(self, credential: Credential) -> None:
        """把使用次数回写到数据库，失败不影响分析结果"""
        if self.credential_store is None:
            return
        try:
            await self.credential_store.increment_usage(credential.api_key)
        except Exception as e:
            logger.warning(f"[Invoker] 更新 Key {credential.key_preview} 使用次数失败: {e}")
