import discord
from discord.ext import commands
import logging
from typing import TYPE_CHECKING

from src.modules.report_sync.services.sync_service import ReportSyncService

if TYPE_CHECKING:
    from src.bot import HotlineBot

logger = logging.getLogger(__name__)

class ReportListener(commands.Cog, name="ReportListener"):
    """
    监听新成员加入，并在机器人就绪后启动举报 Webhook。
    初始化分两步：构造时只保存依赖，on_ready 中调用 initialize() 解析主服务器。
    """

    def __init__(self, bot: "HotlineBot"):
        self.bot = bot
        self.sync_service: ReportSyncService = bot.sync_service
        self.hotline_guild_id: str = bot.hotline_guild_id

    async def initialize(self) -> bool:
        """解析主服务器并启动 Webhook。主服务器不可用时记录错误并返回 False。"""
        guild = self.bot.get_guild(int(self.hotline_guild_id)) if self.hotline_guild_id.isdigit() else None
        if not guild:
            logger.error(
                "ReportListener 初始化失败，找不到主服务器",
                extra={'guild_id': self.hotline_guild_id}
            )
            return False

        self.bot.webhook_server.start()
        logger.info("ReportListener 初始化完成", extra={'guild_id': guild.id})
        return True

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        if str(member.guild.id) == self.hotline_guild_id:
            return

        log_context = {'guild_id': member.guild.id, 'member_id': member.id}
        try:
            await self.sync_service.process_member_join(str(member.guild.id), str(member.id))
        except Exception:
            logger.error("处理 on_member_join (举报同步) 时出错", extra=log_context, exc_info=True)


async def setup(bot: "HotlineBot"):
    await bot.add_cog(ReportListener(bot))
