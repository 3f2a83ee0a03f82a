from src.core.database import Database
from src.modules.report_sync.models import InvalidTagIdError, LoadedSubscriptions, Subscription
from src.modules.report_sync.services.tag_matcher import parse_tag_ids
import logging

logger = logging.getLogger(__name__)

class SubscriptionService:
    def __init__(self, db: Database):
        self.db = db

    async def get_all_subscriptions(self) -> LoadedSubscriptions:
        """获取所有订阅（按存储顺序）。"""
        rows = await self.db.get_all_subscriptions()
        return self._load(rows)

    async def get_subscriptions_for_guild(self, guild_id: str) -> LoadedSubscriptions:
        """获取某个服务器下的所有订阅（按存储顺序）。"""
        rows = await self.db.get_subscriptions_for_guild(guild_id)
        return self._load(rows)

    def _load(self, rows: list[dict]) -> LoadedSubscriptions:
        # 标签在加载时逐行解析，无效的行记录错误并跳过
        loaded = LoadedSubscriptions()
        for row in rows:
            try:
                loaded.subscriptions.append(self._to_subscription(row))
            except InvalidTagIdError as e:
                logger.error(
                    "订阅包含无效的标签 ID，已跳过",
                    extra={'subscription_id': row.get('id'), 'guild_id': row.get('guild_id'), 'tags': row.get('tags')}
                )
                loaded.errors.append(e)
        return loaded

    @staticmethod
    def _to_subscription(row: dict) -> Subscription:
        return Subscription(
            id=row.get('id'),
            guild_id=str(row['guild_id']),
            channel_id=str(row['channel_id']),
            tags=parse_tag_ids(row.get('tags', [])),
            on_users_in_server=bool(row.get('on_users_in_server', False)),
        )
