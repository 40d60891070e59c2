"""
LLM 响应解析
从可能格式不规范的文本中提取 JSON，修复常见错误后校验为 AnalysisResult。
解析失败永远不抛异常，而是返回确定性的兜底结果，保证队列不会卡住。
"""

import json
import logging
import re
from typing import Optional

from pydantic import ValidationError

from hr_ats.core.config import EXTRACTION_FAILURE_MARKERS
from hr_ats.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
JSON_BLOCK_PATTERN = re.compile(r"\{[\s\S]*\}")

MIN_CV_TEXT_LENGTH = 20
EXTRACTION_FAILED_SCORE = 0
NEEDS_REVIEW_SCORE = 25
EXTRACTION_FAILED_SUMMARY = "无法分析：简历文本提取失败"
NEEDS_REVIEW_SUMMARY = "分析已完成，但响应格式需要人工复核"


def strip_code_fences(text: str) -> str:
    """去掉 markdown 代码块包裹"""
    if "```json" in text:
        text = re.sub(r"```json\s*", "", text)
        return re.sub(r"```\s*$", "", text)
    if "```" in text:
        return re.sub(r"```\s*", "", text)
    return text


def extract_json_block(text: str) -> str:
    """截取第一个 '{' 到最后一个 '}' 之间的内容，找不到则原样返回"""
    match = JSON_BLOCK_PATTERN.search(text)
    return match.group(0) if match else text


def repair_json(text: str) -> str:
    """
    修复常见的 JSON 格式错误（重复执行结果不变）

    - 连续逗号合并为一个
    - 冒号后直接跟逗号 -> ": null,"
    - 去掉 } 或 ] 前的多余逗号
    """
    text = re.sub(r",(\s*,)+", ",", text)
    text = re.sub(r":\s*,", ": null,", text)
    text = re.sub(r",\s*([}\]])", r"\1", text)
    return text


def clean_email(email: Optional[str]) -> Optional[str]:
    """只保留符合邮箱格式的部分，否则去掉开头的非字母数字字符"""
    if not email:
        return email
    cleaned = email.strip()
    match = EMAIL_PATTERN.search(cleaned)
    if match:
        return match.group(0)
    return re.sub(r"^[^a-zA-Z0-9]+", "", cleaned)


def is_extraction_failure(cv_text: Optional[str]) -> bool:
    """简历文本本身就是提取失败标记，或内容过短"""
    if not cv_text:
        return True
    if any(marker in cv_text for marker in EXTRACTION_FAILURE_MARKERS):
        return True
    return len(cv_text.strip()) < MIN_CV_TEXT_LENGTH


def build_fallback_result(ai_response: Optional[str], cv_text: Optional[str]) -> AnalysisResult:
    """解析失败时的兜底结果：提取失败给 0 分，否则给 25 分待人工复核"""
    if is_extraction_failure(cv_text):
        score, summary = EXTRACTION_FAILED_SCORE, EXTRACTION_FAILED_SUMMARY
    else:
        score, summary = NEEDS_REVIEW_SCORE, NEEDS_REVIEW_SUMMARY

    return AnalysisResult(
        score=score,
        summary=summary,
        raw_response=ai_response,
        is_fallback=True,
    )


def parse_analysis_response(ai_response: Optional[str], cv_text: Optional[str]) -> AnalysisResult:
    """
    解析 LLM 输出为 AnalysisResult

    Args:
        ai_response: 模型返回的原始文本
        cv_text: 被分析的简历文本（用于决定兜底分数）

    Returns:
        AnalysisResult: 解析成功的结果，或兜底结果
    """
    if not ai_response or not ai_response.strip():
        logger.warning("[ResponseParser] 模型返回空内容，使用兜底结果")
        return build_fallback_result(ai_response, cv_text)

    try:
        json_str = repair_json(extract_json_block(strip_code_fences(ai_response)))
        data = json.loads(json_str.strip())
        if not isinstance(data, dict):
            raise ValueError(f"期望 JSON 对象，实际为 {type(data).__name__}")

        extracted = data.get("extractedData")
        if isinstance(extracted, dict) and extracted.get("email"):
            extracted["email"] = clean_email(str(extracted["email"]))

        result = AnalysisResult.model_validate(data)
        return result.model_copy(update={"raw_response": ai_response, "is_fallback": False})

    except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
        logger.warning(f"[ResponseParser] 无法解析模型响应为 JSON: {e}")
        logger.debug(f"[ResponseParser] 原始响应前500字符: {ai_response[:500]}")
        return build_fallback_result(ai_response, cv_text)
