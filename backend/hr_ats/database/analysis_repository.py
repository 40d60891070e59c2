"""
分析结果持久化
- 保存每次分析的完整结果（analyses 表）
- 更新候选人快照（candidates 表）
- 重新计算项目内排名
"""

import json
import logging
from typing import Any, Dict

from hr_ats.core.exceptions import CandidateNotFoundError
from hr_ats.models.analysis import AnalysisResult

from .base import DatabaseManager, db_manager

logger = logging.getLogger(__name__)

# 候选人快照允许更新的字段
SNAPSHOT_COLUMNS = (
    "name",
    "email",
    "phone",
    "score",
    "previous_score",
    "status",
    "summary",
    "extracted_data",
    "ranking",
)
JSON_COLUMNS = {"extracted_data"}


def _json_or_none(value: Any):
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


class AnalysisRepository:
    """分析结果存储"""

    def __init__(self, db: DatabaseManager = db_manager):
        self.db = db

    async def save_analysis(self, project_id: str, candidate_id: str, result: AnalysisResult) -> str:
        """
        保存一条分析记录

        Returns:
            str: 分析记录 ID
        """
        data = result.model_dump(mode="json", by_alias=True, exclude={"raw_response", "is_fallback"})

        async with self.db.get_connection() as conn:
            analysis_id = await conn.fetchval('''
                INSERT INTO analyses (
                    project_id, candidate_id, ai_response, analysis_data, score, summary,
                    strengths, weaknesses, recommendations, hr_decision, skills_match, risks
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                RETURNING id
            ''',
                project_id,
                candidate_id,
                result.raw_response or "",
                json.dumps(data, ensure_ascii=False),
                result.score,
                result.summary,
                _json_or_none(data.get("strengths")),
                _json_or_none(data.get("weaknesses")),
                _json_or_none(data.get("recommendations")),
                _json_or_none(data.get("hrDecision")),
                _json_or_none(data.get("skillsMatch")),
                _json_or_none(data.get("risks")),
            )

        logger.info(f"[AnalysisRepository] 保存分析结果: ID={analysis_id}, candidate={candidate_id}, score={result.score}")
        return analysis_id

    async def update_candidate_snapshot(self, candidate_id: str, fields: Dict[str, Any]) -> None:
        """
        更新候选人快照字段

        Raises:
            CandidateNotFoundError: 候选人不存在
        """
        columns = [name for name in SNAPSHOT_COLUMNS if name in fields]
        if not columns:
            return

        assignments = []
        params = [candidate_id]
        for name in columns:
            value = fields[name]
            params.append(_json_or_none(value) if name in JSON_COLUMNS else value)
            assignments.append(f"{name} = ${len(params)}")

        sql = f'''
            UPDATE candidates
            SET {", ".join(assignments)}, updated_at = NOW()
            WHERE id = $1
        '''
        updated = await self.db.execute_update(sql, tuple(params))
        if updated == 0:
            raise CandidateNotFoundError(f"候选人不存在: {candidate_id}")

    async def update_rankings(self, project_id: str) -> int:
        """按得分降序重新计算项目内排名，返回更新的候选人数量"""
        updated = await self.db.execute_update('''
            UPDATE candidates AS c
            SET ranking = ranked.position
            FROM (
                SELECT id, ROW_NUMBER() OVER (ORDER BY score DESC, created_at ASC) AS position
                FROM candidates
                WHERE project_id = $1
            ) AS ranked
            WHERE c.id = ranked.id
        ''', (project_id,))
        logger.info(f"[AnalysisRepository] 项目 {project_id} 排名已更新，共 {updated} 位候选人")
        return updated
