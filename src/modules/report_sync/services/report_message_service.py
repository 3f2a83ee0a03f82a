from typing import Optional

from src.core.database import Database
from src.modules.report_sync.models import ReportMessage


class ReportMessageService:
    """
    负责举报消息映射的读写。
    这张表是“消息是否存在”的唯一依据，而不是 Discord 上的实际状态。
    """

    def __init__(self, db: Database):
        self.db = db

    async def find(self, report_id: int, guild_id: str, channel_id: str) -> Optional[ReportMessage]:
        row = await self.db.get_report_message(report_id, guild_id, channel_id)
        return ReportMessage.from_row(row) if row else None

    async def save(self, report_message: ReportMessage):
        """按唯一键创建或覆盖映射。标记删除的记录同样保留。"""
        await self.db.upsert_report_message(
            report_message.report_id,
            report_message.guild_id,
            report_message.channel_id,
            report_message.message_id,
            report_message.deleted,
            report_message.insert_date.isoformat(),
            report_message.update_date.isoformat(),
        )
