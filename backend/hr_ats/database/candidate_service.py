"""
候选人与项目查询服务
"""

import json
import logging
from typing import Any, Dict, Optional

from hr_ats.core.exceptions import CandidateNotFoundError
from hr_ats.models.queue import CandidateSnapshot, ProjectSnapshot

from .base import DatabaseManager, db_manager

logger = logging.getLogger(__name__)

_CANDIDATE_COLUMNS = '''
    c.id, c.project_id, c.name, c.email, c.phone, c.file_name, c.extracted_text,
    c.score, c.previous_score, c.status, c.summary, c.extracted_data, c.ranking
'''


class CandidateService:
    """候选人服务"""

    def __init__(self, db: DatabaseManager = db_manager):
        self.db = db

    async def get_project(self, project_id: str, company_id: Optional[str] = None) -> ProjectSnapshot:
        """
        查询项目；指定 company_id 时校验项目归属

        Raises:
            CandidateNotFoundError: 项目不存在或不属于该公司
        """
        sql = 'SELECT id, company_id, name, job_description, custom_prompt FROM projects WHERE id = $1'
        params = [project_id]
        if company_id:
            sql += ' AND company_id = $2'
            params.append(company_id)

        row = await self.db.execute_one(sql, tuple(params))
        if not row:
            raise CandidateNotFoundError(f"项目不存在: {project_id}")
        return ProjectSnapshot(**row)

    async def get_candidate(self, candidate_id: str, company_id: Optional[str] = None) -> CandidateSnapshot:
        """
        查询候选人；指定 company_id 时通过所属项目校验归属

        Raises:
            CandidateNotFoundError: 候选人不存在或不属于该公司
        """
        sql = f'''
            SELECT {_CANDIDATE_COLUMNS}
            FROM candidates c JOIN projects p ON p.id = c.project_id
            WHERE c.id = $1
        '''
        params = [candidate_id]
        if company_id:
            sql += ' AND p.company_id = $2'
            params.append(company_id)

        row = await self.db.execute_one(sql, tuple(params))
        if not row:
            raise CandidateNotFoundError(f"候选人不存在: {candidate_id}")
        return self._row_to_snapshot(row)

    async def create_candidate(
        self,
        project_id: str,
        name: str,
        extracted_text: str,
        file_name: str,
    ) -> CandidateSnapshot:
        """创建待分析的候选人记录"""
        async with self.db.get_connection() as conn:
            row = await conn.fetchrow(f'''
                INSERT INTO candidates AS c (project_id, name, extracted_text, file_name, status)
                VALUES ($1, $2, $3, $4, 'pending')
                RETURNING {_CANDIDATE_COLUMNS}
            ''', project_id, name, extracted_text, file_name)

        candidate = self._row_to_snapshot(dict(row))
        logger.info(f"[CandidateService] 创建候选人: ID={candidate.id}, name={name}, project={project_id}")
        return candidate

    def _row_to_snapshot(self, row: Dict[str, Any]) -> CandidateSnapshot:
        """将数据库行转换为候选人快照"""
        extracted_data = row.get("extracted_data")
        if isinstance(extracted_data, str):
            extracted_data = json.loads(extracted_data)

        previous_score = row.get("previous_score")
        return CandidateSnapshot(
            id=row["id"],
            project_id=row.get("project_id"),
            name=row.get("name"),
            email=row.get("email"),
            phone=row.get("phone"),
            file_name=row.get("file_name"),
            extracted_text=row.get("extracted_text") or "",
            score=float(row.get("score") or 0),
            previous_score=float(previous_score) if previous_score is not None else None,
            status=row.get("status") or "pending",
            summary=row.get("summary"),
            extracted_data=extracted_data,
            ranking=row.get("ranking") or 0,
        )
