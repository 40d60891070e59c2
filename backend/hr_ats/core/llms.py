"""
LLM 客户端工厂
每次调用按 Key + 模型动态创建 ChatOpenAI 实例（OpenAI 兼容网关：Together AI / OpenRouter）
"""

from typing import Optional

from langchain_openai import ChatOpenAI

from hr_ats.core.config import (
    LLM_BASE_URL,
    LLM_MAX_TOKENS,
    LLM_TEMPERATURE,
    LLM_TIMEOUT_SECONDS,
    LLM_TOP_P,
    PROVIDER_BASE_URLS,
)


def resolve_base_url(provider: Optional[str] = None) -> str:
    """根据 Key 的提供商返回网关地址，未知提供商使用默认地址"""
    if provider and provider in PROVIDER_BASE_URLS:
        return PROVIDER_BASE_URLS[provider]
    return LLM_BASE_URL


def create_llm_from_config(
    api_key: str,
    base_url: str,
    model: str,
    temperature: float = LLM_TEMPERATURE,
    max_tokens: int = LLM_MAX_TOKENS,
    top_p: float = LLM_TOP_P,
    timeout: float = LLM_TIMEOUT_SECONDS,
) -> ChatOpenAI:
    """
    根据 Key 配置创建 LLM 实例

    重试由调用方（模型回退 / 队列）负责，这里关闭客户端自带的重试；
    同时返回响应头，便于读取 x-ratelimit-remaining。

    Args:
        api_key: API Key
        base_url: API Base URL
        model: 模型名称
        temperature: 温度参数
        max_tokens: 最大 token 数
        top_p: nucleus 采样参数
        timeout: 请求超时（秒）

    Returns:
        ChatOpenAI: LLM 实例
    """
    return ChatOpenAI(
        model=model,
        api_key=api_key,
        base_url=base_url,
        temperature=temperature,
        max_tokens=max_tokens,
        top_p=top_p,
        timeout=timeout,
        max_retries=0,
        include_response_headers=True,
    )
