"""
应用配置模块
所有可调参数从环境变量读取（.env 可选），核心类的构造参数默认值均来自这里
"""

import os
from dotenv import load_dotenv

# 项目根目录 (.../backend/hr_ats/core/config.py -> 项目根)
current_file_path = os.path.abspath(__file__)
core_dir = os.path.dirname(current_file_path)
package_dir = os.path.dirname(core_dir)
backend_dir = os.path.dirname(package_dir)
project_root = os.path.dirname(backend_dir)
env_path = os.path.join(project_root, ".env")

# 生产环境可能没有 .env 文件，不覆盖真实环境变量
load_dotenv(env_path, override=False)


def _get_list(name: str, default: str = "") -> list:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# ==================== LLM 网关 ====================
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.together.xyz/v1")

PROVIDER_BASE_URLS = {
    "together_ai": os.getenv("TOGETHER_AI_BASE_URL", "https://api.together.xyz/v1"),
    "openrouter": os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
}

# 数据库不可用时使用的备用 Key（逗号分隔）
FALLBACK_API_KEYS = _get_list("LLM_API_KEYS")

# 默认模型列表：按成本/质量梯度排列
DEFAULT_MODELS = _get_list(
    "LLM_DEFAULT_MODELS",
    "meta-llama/llama-3.2-11b-vision-instruct,anthropic/claude-3-haiku,openai/gpt-3.5-turbo",
)

LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2048"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))
LLM_TOP_P = float(os.getenv("LLM_TOP_P", "0.9"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "120"))

# ==================== Key 池 ====================
DEFAULT_MAX_REQUESTS = int(os.getenv("KEY_MAX_REQUESTS", "1000"))
KEY_COOLDOWN_SECONDS = int(os.getenv("KEY_COOLDOWN_SECONDS", "3600"))
LOW_REMAINING_THRESHOLD = int(os.getenv("KEY_LOW_REMAINING_THRESHOLD", "5"))

# ==================== 分析队列 ====================
DELAY_BETWEEN_REQUESTS = float(os.getenv("QUEUE_DELAY_BETWEEN_REQUESTS", "1.5"))
JITTER_MIN_SECONDS = float(os.getenv("QUEUE_JITTER_MIN", "0.5"))
JITTER_MAX_SECONDS = float(os.getenv("QUEUE_JITTER_MAX", "1.5"))

MAX_PROJECT_QUEUES = int(os.getenv("QUEUE_MAX_PROJECTS", "50"))
QUEUE_MAX_AGE_SECONDS = int(os.getenv("QUEUE_MAX_AGE_SECONDS", "7200"))
JANITOR_INTERVAL_SECONDS = int(os.getenv("QUEUE_JANITOR_INTERVAL", "900"))
ABANDONED_QUEUE_GRACE_SECONDS = float(os.getenv("QUEUE_ABANDONED_GRACE", "30"))

MEMORY_WARNING_MB = int(os.getenv("MEMORY_WARNING_MB", "512"))
MEMORY_CRITICAL_MB = int(os.getenv("MEMORY_CRITICAL_MB", "1024"))
MEMORY_EVICTION_BATCH = int(os.getenv("MEMORY_EVICTION_BATCH", "5"))

# ==================== 候选人 ====================
UNKNOWN_CANDIDATE_NAME = "未知候选人"

# 文件解析失败时写入候选人文本的标记
EXTRACTION_FAILED_MARKER = "[PDF extraction failed]"
PROCESSING_ERROR_MARKER = "[PDF processing error]"
EXTRACTION_FAILURE_MARKERS = (EXTRACTION_FAILED_MARKER, PROCESSING_ERROR_MARKER)

MAX_UPLOAD_SIZE_MB = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ==================== 服务 ====================
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
