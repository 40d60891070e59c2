"""
简历分析 Prompt 模板
"""

from typing import Optional


DEFAULT_RECRUITER_PROMPT = """你是一位资深的 HR 招聘专家。请根据岗位描述分析这份简历，为招聘决策提供完整评估。

【重点分析维度】：
1. 技术匹配度（技能、技术栈）
2. 经验水平与岗位要求（年限、职级）
3. 文化匹配与软技能
4. 成长与学习潜力
5. 已识别的风险（资历过高/不足、稳定性）

【给出明确建议】：
- HIRE：理想候选人，高度匹配
- INTERVIEW：有潜力，需要进一步面试确认
- REJECT：存在重大不匹配，不满足核心要求

请保持客观、具体，并以招聘决策为导向。"""


RESPONSE_SCHEMA_INSTRUCTION = """请分析这份简历，并**只输出 JSON**，结构如下：
{
  "score": number (0-100),
  "summary": "候选人简要总结",
  "strengths": ["优势", "列表"],
  "weaknesses": ["不足", "列表"],
  "recommendations": ["建议", "列表"],
  "hrDecision": {
    "recommendation": "HIRE|INTERVIEW|REJECT",
    "confidence": number (0-100),
    "reasoning": "决策理由",
    "priority": "HIGH|MEDIUM|LOW"
  },
  "skillsMatch": {
    "technical": number (0-100),
    "experience": number (0-100),
    "cultural": number (0-100),
    "overall": number (0-100)
  },
  "risks": ["已识别的", "风险"],
  "extractedData": {
    "name": "候选人姓名",
    "email": "邮箱（如有）",
    "phone": "电话（如有）",
    "experience": "工作年限",
    "skills": ["技能", "列表"],
    "education": "教育背景",
    "seniority": "JUNIOR|MIDDLE|SENIOR|LEAD"
  }
}"""


def build_analysis_prompt(cv_text: str, job_description: str, custom_prompt: Optional[str] = None) -> str:
    """
    构建完整的分析 Prompt

    项目自定义 Prompt 优先，否则使用默认的招聘专家 Prompt；
    JSON 结构说明始终附加在最后。
    """
    persona = custom_prompt.strip() if custom_prompt and custom_prompt.strip() else DEFAULT_RECRUITER_PROMPT

    return f"""{persona}

【岗位描述】：
{job_description or ""}

【简历内容】：
{cv_text or ""}

{RESPONSE_SCHEMA_INSTRUCTION}"""
