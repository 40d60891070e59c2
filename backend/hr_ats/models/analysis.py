"""
简历分析结果数据模型
在 LLM 网关响应边界完成校验，之后在系统内部只流转 AnalysisResult

LLM 输出的子字段类型经常不稳定（"high"、"85%"、对象形式的教育经历等），
子字段无法识别时只丢弃该字段，不影响整体得分。
"""

import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

_NUMBER_PATTERN = re.compile(r"^-?\d+(?:\.\d+)?$")


def _to_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


def _to_number_or_none(value: Any) -> Optional[float]:
    """数字或 "85"、"85%" 这样的字符串转为 float，其余情况返回 None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        if _NUMBER_PATTERN.match(text):
            return float(text)
    return None


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HrDecision(_CamelModel):
    """招聘决策建议"""
    recommendation: Optional[str] = Field(default=None, description="HIRE/INTERVIEW/REJECT")
    confidence: Optional[float] = Field(default=None, description="置信度 (0-100)")
    reasoning: Optional[str] = Field(default=None, description="决策理由")
    priority: Optional[str] = Field(default=None, description="HIGH/MEDIUM/LOW")

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value):
        return _to_number_or_none(value)

    @field_validator("recommendation", "reasoning", "priority", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        return None if value is None else str(value)


class SkillsMatch(_CamelModel):
    """各维度匹配度 (0-100)"""
    technical: Optional[float] = None
    experience: Optional[float] = None
    cultural: Optional[float] = None
    overall: Optional[float] = None

    @field_validator("technical", "experience", "cultural", "overall", mode="before")
    @classmethod
    def _coerce_numbers(cls, value):
        return _to_number_or_none(value)


class ExtractedData(_CamelModel):
    """从简历中提取的结构化信息"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    experience: Optional[Union[str, int, float, List[Any], Dict[str, Any]]] = None
    skills: List[str] = Field(default_factory=list)
    education: Optional[Union[str, List[Any], Dict[str, Any]]] = None
    seniority: Optional[str] = None

    @field_validator("skills", mode="before")
    @classmethod
    def _coerce_skills(cls, value):
        return _to_str_list(value)

    @field_validator("name", "email", "phone", "seniority", mode="before")
    @classmethod
    def _coerce_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (int, float)):
            return str(value)
        return None


class AnalysisResult(_CamelModel):
    """单个候选人的完整分析结果"""
    score: float = Field(default=0, description="综合评分 (0-100)")
    summary: str = Field(default="", description="候选人总结")
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    hr_decision: Optional[HrDecision] = Field(default=None, alias="hrDecision")
    skills_match: Optional[SkillsMatch] = Field(default=None, alias="skillsMatch")
    risks: List[str] = Field(default_factory=list)
    extracted_data: ExtractedData = Field(default_factory=ExtractedData, alias="extractedData")

    # 解析失败时保留原始响应，供人工复核
    raw_response: Optional[str] = Field(default=None, alias="aiResponse")
    is_fallback: bool = Field(default=False, alias="isFallback")

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value):
        if value is None or value == "":
            return 0
        if isinstance(value, str):
            value = value.strip().rstrip("%")
        return value

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        return max(0.0, min(100.0, value))

    @field_validator("summary", mode="before")
    @classmethod
    def _coerce_summary(cls, value):
        return "" if value is None else str(value)

    @field_validator("strengths", "weaknesses", "recommendations", "risks", mode="before")
    @classmethod
    def _coerce_lists(cls, value):
        return _to_str_list(value)

    @field_validator("hr_decision", "skills_match", mode="wrap")
    @classmethod
    def _lenient_section(cls, value, handler, info):
        try:
            return handler(value)
        except ValidationError as e:
            logger.warning(f"[AnalysisResult] 字段 {info.field_name} 无法识别，已忽略: {e.error_count()} 处错误")
            return None

    @field_validator("extracted_data", mode="wrap")
    @classmethod
    def _lenient_extracted(cls, value, handler):
        if value is None:
            value = {}
        try:
            return handler(value)
        except ValidationError as e:
            logger.warning(f"[AnalysisResult] 字段 extractedData 无法识别，已忽略: {e.error_count()} 处错误")
            return ExtractedData()
