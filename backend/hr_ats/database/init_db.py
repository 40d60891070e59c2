"""
PostgreSQL 数据库初始化模块
负责创建所有表结构和索引
"""

import logging

from .base import DatabaseManager, db_manager

logger = logging.getLogger(__name__)

# 初始化状态标记，避免重复执行DDL
_db_initialized = False

TABLES = {
    "projects": '''
        CREATE TABLE IF NOT EXISTS projects (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            company_id TEXT,
            name TEXT NOT NULL,
            job_description TEXT NOT NULL DEFAULT '',
            custom_prompt TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    ''',
    "candidates": '''
        CREATE TABLE IF NOT EXISTS candidates (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            email TEXT,
            phone TEXT,
            extracted_text TEXT NOT NULL,
            file_name TEXT NOT NULL,
            extracted_data JSONB,
            score NUMERIC(5, 2) NOT NULL DEFAULT 0,
            previous_score NUMERIC(5, 2),
            status TEXT NOT NULL DEFAULT 'pending',
            summary TEXT,
            ranking INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    ''',
    "analyses": '''
        CREATE TABLE IF NOT EXISTS analyses (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            candidate_id TEXT NOT NULL REFERENCES candidates(id) ON DELETE CASCADE,
            ai_response TEXT NOT NULL,
            analysis_data JSONB NOT NULL,
            score NUMERIC(5, 2) NOT NULL,
            summary TEXT,
            strengths JSONB,
            weaknesses JSONB,
            recommendations JSONB,
            hr_decision JSONB,
            skills_match JSONB,
            risks JSONB,
            created_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    ''',
    "api_keys": '''
        CREATE TABLE IF NOT EXISTS api_keys (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            key VARCHAR(500) NOT NULL UNIQUE,
            name VARCHAR(100),
            company_id TEXT,
            provider VARCHAR(50) NOT NULL DEFAULT 'together_ai',
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            usage_count INTEGER NOT NULL DEFAULT 0,
            last_used_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    ''',
    "api_key_model_configs": '''
        CREATE TABLE IF NOT EXISTS api_key_model_configs (
            id TEXT PRIMARY KEY DEFAULT gen_random_uuid()::text,
            api_key_id TEXT NOT NULL REFERENCES api_keys(id) ON DELETE CASCADE,
            primary_model TEXT NOT NULL,
            fallback_model_1 TEXT,
            fallback_model_2 TEXT,
            fallback_model_3 TEXT,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            notes TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    ''',
}

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_projects_company ON projects(company_id)",
    "CREATE INDEX IF NOT EXISTS idx_candidates_project_score ON candidates(project_id, score DESC)",
    "CREATE INDEX IF NOT EXISTS idx_analyses_candidate ON analyses(candidate_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_api_keys_company_active ON api_keys(company_id, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_model_configs_key ON api_key_model_configs(api_key_id, is_active)",
]


async def init_database(db: DatabaseManager = db_manager):
    """
    初始化 PostgreSQL 数据库，创建所有必要的表和索引
    只在首次调用时执行DDL语句
    """
    global _db_initialized

    if _db_initialized:
        logger.debug("数据库已初始化，跳过重复初始化")
        return

    try:
        async with db.get_connection() as conn:
            for name, ddl in TABLES.items():
                await conn.execute(ddl)
                logger.info(f"✓ {name} 表已创建/验证")

            for ddl in INDEXES:
                await conn.execute(ddl)
            logger.info("✓ 所有索引已创建/验证")

        logger.info(f"✓ 数据库初始化完成: {db.config['database']}")
        _db_initialized = True

    except Exception as e:
        logger.error(f"✗ 数据库初始化失败: {e}")
        raise
