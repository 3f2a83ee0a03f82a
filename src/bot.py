import discord
from discord.ext import commands
import os
import asyncio
import pathlib
from dotenv import load_dotenv, find_dotenv
from src.core.database import Database
from src.core.utils import get_int_env
from src.modules.report_sync.services.chat_client import DiscordChatClient
from src.modules.report_sync.services.reconciler import NotificationReconciler
from src.modules.report_sync.services.report_index_client import ReportIndexClient
from src.modules.report_sync.services.report_message_service import ReportMessageService
from src.modules.report_sync.services.subscription_service import SubscriptionService
from src.modules.report_sync.services.sync_service import ReportSyncService
from src.modules.report_sync.webhook import WebhookServer, create_webhook_app
import logging
from src.core.logging_setup import setup_logging

# 使用 find_dotenv() 确保总能找到 .env 文件
load_dotenv(find_dotenv())
TOKEN = os.getenv('DISCORD_TOKEN')

DEFAULT_HOTLINE_GUILD_ID = '204100839806205953'

logger = logging.getLogger(__name__)

class HotlineBot(commands.Bot):
    def __init__(self):
        logger.info("--- ⌛ 0. 环境与配置加载 ---")
        self.hotline_guild_id: str = os.getenv('HOTLINE_GUILD_ID', DEFAULT_HOTLINE_GUILD_ID).strip()
        self.report_api_url: str | None = os.getenv('REPORT_API_URL')
        self.report_api_token: str | None = os.getenv('REPORT_API_TOKEN') or None
        self.report_api_timeout = get_int_env('REPORT_API_TIMEOUT_SECONDS', 10)
        self.webhook_host = os.getenv('WEBHOOK_HOST', '0.0.0.0')
        self.webhook_port = get_int_env('WEBHOOK_PORT', 8080)
        logger.info(f"主服务器 ID: {self.hotline_guild_id}，Webhook 监听: {self.webhook_host}:{self.webhook_port}")

        intents = discord.Intents.default()
        intents.members = True  # on_member_join 和成员缓存都需要成员意图
        super().__init__(command_prefix="!", intents=intents)

        self.db: Database | None = None
        self.report_index: ReportIndexClient | None = None
        self.subscription_service: SubscriptionService | None = None
        self.report_message_service: ReportMessageService | None = None
        self.sync_service: ReportSyncService | None = None
        self.webhook_server: WebhookServer | None = None
        self._listener_initialized = False

    async def setup_hook(self) -> None:
        """
        Bot 启动时执行的异步初始化。
        这里只构造服务，Webhook 要等到连接 Discord 并确认主服务器可用之后才启动。
        """
        logger.info("--- 🚀 1. 初始化核心服务 ---")
        self.db = Database()
        await self.db.connect()

        self.report_index = ReportIndexClient(
            self.report_api_url,
            token=self.report_api_token,
            timeout=float(self.report_api_timeout),
        )
        self.subscription_service = SubscriptionService(self.db)
        self.report_message_service = ReportMessageService(self.db)
        reconciler = NotificationReconciler(DiscordChatClient(self), self.report_message_service)
        self.sync_service = ReportSyncService(self.subscription_service, reconciler, self.report_index)
        self.webhook_server = WebhookServer(create_webhook_app(self.sync_service), self.webhook_host, self.webhook_port)
        logger.info("✅ 核心服务初始化完成。")

        logger.info("--- 🧩 2. 加载功能模块 (Cogs) ---")
        await self.load_all_cogs()
        logger.info(f"--- 🎉 机器人核心已就绪,等待 Discord 连接成功...---")

    async def on_ready(self):
        logger.info(f"--- ✅ 已成功连接到 Discord ---,以 {self.user} (ID: {self.user.id}) 的身份登录-")

        # on_ready 在断线重连后可能再次触发
        if self._listener_initialized:
            return

        logger.info("--- 🛰️ 3. 初始化举报监听与 Webhook ---")
        listener = self.get_cog("ReportListener")
        if listener is None:
            logger.error("ReportListener 未加载，Webhook 不会启动。")
            return

        self._listener_initialized = await listener.initialize()
        if self._listener_initialized:
            logger.info("======================== 机器人完全就绪 ========================")

    async def close(self):
        """在机器人关闭时，优雅地清理资源。"""
        logger.info("正在关闭机器人并清理资源...")

        # 先断开 Discord 连接，再清理我们自己的资源
        await super().close()
        logger.info("Discord 客户端已成功关闭。")

        if self.webhook_server:
            await self.webhook_server.stop()

        if self.report_index:
            await self.report_index.close()
            logger.info("举报 API 客户端已关闭。")

        if self.db and self.db.conn:
            await self.db.close()
            logger.info("数据库连接已关闭。")

        logger.info("所有自定义资源已成功清理，机器人已完全关闭。")

    async def load_all_cogs(self):
        """查找并加载 modules 目录下所有 Cogs。"""
        project_root = pathlib.Path(__file__).parent.parent
        modules_root = project_root / "src" / "modules"

        for path in modules_root.rglob("cogs/*.py"):
            if path.name == "__init__.py":
                continue

            # 例如: .../src/modules/report_sync/cogs/report_listener.py -> src.modules.report_sync.cogs.report_listener
            module_path = ".".join(path.relative_to(project_root).parts).removesuffix(".py")
            try:
                await self.load_extension(module_path)
                logger.info(f"✅ 已加载: {module_path}")
            except Exception as e:
                logger.error(f"❌ 加载 {module_path} 失败: {e}", exc_info=True)


async def main():
    setup_logging()

    if not TOKEN:
        logger.critical("错误：未在 .env 文件中找到 DISCORD_TOKEN。机器人无法启动。")
        return
    if not os.getenv('REPORT_API_URL'):
        logger.critical("错误：未在 .env 文件中找到 REPORT_API_URL。机器人无法启动。")
        return

    bot = HotlineBot()

    try:
        await bot.start(TOKEN)
    except discord.errors.LoginFailure:
        logger.critical("错误：提供的 DISCORD_TOKEN 无效。请检查 .env 文件。")
    except Exception as e:
        logger.critical(f"机器人启动时发生致命错误: {e}", exc_info=True)
    finally:
        if not bot.is_closed():
            logger.info("检测到程序即将退出，正在优雅地关闭机器人...")
            await bot.close()

def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("程序已干净地退出。")

if __name__ == "__main__":
    run()
