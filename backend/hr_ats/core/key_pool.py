"""
API Key 池管理
负责 Key 的加载、轮询、额度控制、限流停用和冷却恢复。

所有状态只存在于内存中，由组合根创建并注入。
并发模型是单线程事件循环：所有修改状态的方法都是同步的（中间没有 await），
因此无需加锁；但轮询游标不支持真正的多线程并发访问。
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from hr_ats.core.config import (
    DEFAULT_MAX_REQUESTS,
    FALLBACK_API_KEYS,
    KEY_COOLDOWN_SECONDS,
    LOW_REMAINING_THRESHOLD,
)
from hr_ats.models.credential import Credential

logger = logging.getLogger(__name__)

# 429: 限流, 402: 需要付费
DEACTIVATING_STATUS_CODES = (429, 402)


class KeyPoolManager:
    """Key 池管理器"""

    def __init__(
        self,
        credential_store=None,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        cooldown_seconds: int = KEY_COOLDOWN_SECONDS,
        low_remaining_threshold: int = LOW_REMAINING_THRESHOLD,
        fallback_keys: Optional[List[str]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            credential_store: Key 存储（提供 list_active / list_active_global / increment_usage）
            max_requests: 每个 Key 的请求上限
            cooldown_seconds: 冷却时间，超过后重置计数并重新启用
            low_remaining_threshold: 网关剩余请求数低于该值时告警
            fallback_keys: 存储不可用时使用的备用 Key
            clock: 时间来源（测试时可替换）
        """
        self.credential_store = credential_store
        self.max_requests = max_requests
        self.cooldown = timedelta(seconds=cooldown_seconds)
        self.low_remaining_threshold = low_remaining_threshold
        self.fallback_keys = FALLBACK_API_KEYS if fallback_keys is None else fallback_keys
        self._clock = clock

        self._accounts: Dict[str, Credential] = {}
        self._order: List[str] = []
        self._cursor = 0

    # ------------------------------------------------------------------
    # 加载
    # ------------------------------------------------------------------

    def add_credential(
        self,
        api_key: str,
        credential_id: Optional[str] = None,
        company_id: Optional[str] = None,
        provider: Optional[str] = None,
        max_requests: Optional[int] = None,
    ) -> Credential:
        """把 Key 合并进池中；已存在的 Key 保留计数和状态，只刷新元信息"""
        account = self._accounts.get(api_key)
        if account is None:
            account = Credential(
                id=credential_id,
                api_key=api_key,
                company_id=company_id,
                provider=provider or "together_ai",
                max_requests=max_requests or self.max_requests,
            )
            self._accounts[api_key] = account
            self._order.append(api_key)
        else:
            if credential_id:
                account.id = credential_id
            if company_id is not None:
                account.company_id = company_id
            if provider:
                account.provider = provider
        return account

    async def _load_records(self, scope: Optional[str]) -> List[Dict[str, Any]]:
        """按范围读取 Key：公司 Key -> 全局 Key；未指定范围时读取全部可用 Key"""
        if self.credential_store is None:
            return [{"id": None, "key": key} for key in self.fallback_keys]

        try:
            if scope:
                records = await self.credential_store.list_active(scope)
                if not records:
                    logger.info(f"[KeyPool] 公司 {scope} 没有专属 Key，使用全局 Key")
                    records = await self.credential_store.list_active_global()
            else:
                records = await self.credential_store.list_active()
            return list(records)
        except Exception as e:
            logger.warning(f"[KeyPool] 从数据库加载 API Key 失败，回退到环境变量: {e}")
            return [{"id": None, "key": key} for key in self.fallback_keys]

    async def list_usable_credentials(self, scope: Optional[str] = None) -> List[Credential]:
        """
        返回某个范围内当前可用的 Key

        排序：请求数最少、最久未使用的优先，使负载分散到所有 Key 上。

        Args:
            scope: 公司 ID，None 表示不限范围

        Returns:
            List[Credential]: 可用 Key 列表（可能为空）
        """
        records = await self._load_records(scope)

        # 以下为同步代码：合并、冷却、筛选之间没有挂起点
        accounts = []
        for record in records:
            key = record.get("key")
            if not key:
                continue
            accounts.append(self.add_credential(
                api_key=key,
                credential_id=record.get("id"),
                company_id=record.get("company_id"),
                provider=record.get("provider"),
            ))

        self.reset_expired()

        usable = [account for account in accounts if account.is_usable]
        usable.sort(key=lambda a: (a.request_count, a.last_used or datetime.min))
        return usable

    # ------------------------------------------------------------------
    # 轮询
    # ------------------------------------------------------------------

    def next_available(self, allowed: Optional[Iterable[Credential]] = None) -> Optional[Credential]:
        """
        从上次返回位置之后开始轮询，返回下一个可用 Key

        转完一整圈仍找不到时执行一次冷却恢复，再转一圈；仍没有则返回 None。

        Args:
            allowed: 只在这些 Key 中选择（None 表示整个池）
        """
        if not self._order:
            return None

        allowed_keys = None if allowed is None else {c.api_key for c in allowed}

        for attempt in range(2):
            for _ in range(len(self._order)):
                index = self._cursor % len(self._order)
                self._cursor = (index + 1) % len(self._order)
                account = self._accounts[self._order[index]]
                if allowed_keys is not None and account.api_key not in allowed_keys:
                    continue
                if account.is_usable:
                    return account
            if attempt == 0:
                self.reset_expired()

        return None

    # ------------------------------------------------------------------
    # 状态变更
    # ------------------------------------------------------------------

    def mark_used(self, credential: Credential) -> None:
        """记录一次成功请求；达到上限时停用"""
        credential.last_used = self._clock()
        credential.request_count += 1

        if credential.request_count >= credential.max_requests:
            credential.is_active = False
            logger.warning(f"[KeyPool] Key {credential.key_preview} 已达到请求上限 {credential.max_requests}")

    def mark_failed(self, credential: Credential, status_code: Optional[int]) -> None:
        """限流 (429) 或需要付费 (402) 时立即停用，冷却时间从此刻开始计算"""
        if status_code not in DEACTIVATING_STATUS_CODES:
            return
        credential.is_active = False
        credential.last_used = self._clock()
        logger.warning(f"[KeyPool] Key {credential.key_preview} 因 HTTP {status_code} 被停用")

    def record_rate_limit(self, credential: Credential, remaining: Optional[int]) -> bool:
        """记录网关返回的剩余请求数，剩余过少时返回 True"""
        credential.rate_limit_remaining = remaining
        if remaining is not None and remaining <= self.low_remaining_threshold:
            logger.warning(f"[KeyPool] Key {credential.key_preview} 仅剩 {remaining} 次请求")
            return True
        return False

    def reset_expired(self) -> int:
        """冷却恢复：最后使用时间早于冷却窗口的 Key 重置计数并重新启用"""
        now = self._clock()
        restored = 0
        for account in self._accounts.values():
            if account.last_used is None or now - account.last_used < self.cooldown:
                continue
            if not account.is_usable:
                restored += 1
                logger.info(f"[KeyPool] Key {account.key_preview} 冷却结束，已重新启用")
            account.request_count = 0
            account.is_active = True
        return restored

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._order)

    def get(self, api_key: str) -> Optional[Credential]:
        return self._accounts.get(api_key)

    def get_accounts_status(self) -> List[Dict[str, Any]]:
        """Key 池状态（不暴露完整 Key）"""
        return [
            {
                "index": index,
                "id": account.id,
                "companyId": account.company_id,
                "provider": account.provider,
                "isActive": account.is_active,
                "requestCount": account.request_count,
                "maxRequests": account.max_requests,
                "lastUsed": account.last_used.isoformat() if account.last_used else None,
                "rateLimitRemaining": account.rate_limit_remaining,
                "keyPreview": account.key_preview,
            }
            for index, account in enumerate(self._accounts[key] for key in self._order)
        ]
