import aiosqlite
import os
import pathlib
import logging
import json
from typing import Optional

logger = logging.getLogger(__name__)

class Database:
    def __init__(self, db_name: Optional[str] = None):
        # SQLite 不需要连接池，只需要一个连接对象
        self.conn = None
        self.db_name = db_name or os.getenv('DB_NAME', 'hotline_reports.db')

    async def connect(self):
        """连接到SQLite数据库文件"""
        self.conn = await aiosqlite.connect(self.db_name)
        # 让查询结果可以像字典一样通过列名访问
        self.conn.row_factory = aiosqlite.Row
        await self.conn.execute("PRAGMA foreign_keys = ON")
        await self.conn.commit()
        await self._run_migrations()
        logger.info("数据库连接成功并完成初始化", extra={'db_name': self.db_name})

    async def close(self):
        if self.conn:
            await self.conn.close()
            self.conn = None

    async def _execute(self, query, args=None, fetch=None):
        """通用的执行函数"""
        async with self.conn.cursor() as cursor:
            await cursor.execute(query, args or ())
            if fetch == 'one':
                return await cursor.fetchone()
            if fetch == 'all':
                return await cursor.fetchall()
            # 对于 INSERT, UPDATE, DELETE，我们需要手动提交
            await self.conn.commit()
            return cursor.rowcount

    # --- 订阅 (Subscription) ---

    async def get_all_subscriptions(self) -> list[dict]:
        """获取所有订阅，按创建顺序返回。"""
        sql = "SELECT * FROM subscriptions ORDER BY id"
        results = await self._execute(sql, fetch='all')
        return [self._subscription_row(row) for row in results] if results else []

    async def get_subscriptions_for_guild(self, guild_id: str) -> list[dict]:
        """获取某个服务器下的所有订阅。"""
        sql = "SELECT * FROM subscriptions WHERE guild_id = ? ORDER BY id"
        results = await self._execute(sql, (guild_id,), fetch='all')
        return [self._subscription_row(row) for row in results] if results else []

    @staticmethod
    def _subscription_row(row) -> dict:
        subscription = dict(row)
        subscription['tags'] = json.loads(subscription.get('tags') or '[]')
        subscription['on_users_in_server'] = bool(subscription.get('on_users_in_server', 0))
        return subscription

    # --- 举报消息映射 (ReportMessage) ---

    async def get_report_message(self, report_id: int, guild_id: str, channel_id: str) -> Optional[dict]:
        """按 (report_id, guild_id, channel_id) 获取举报消息映射。"""
        sql = "SELECT * FROM report_messages WHERE report_id = ? AND guild_id = ? AND channel_id = ?"
        result = await self._execute(sql, (report_id, guild_id, channel_id), fetch='one')
        if not result:
            return None

        report_message = dict(result)
        report_message['deleted'] = bool(report_message.get('deleted', 0))
        return report_message

    async def upsert_report_message(
        self,
        report_id: int,
        guild_id: str,
        channel_id: str,
        message_id: str,
        deleted: bool,
        insert_date: str,
        update_date: str,
    ):
        """创建或更新举报消息映射。唯一键为 (report_id, guild_id, channel_id)，insert_date 只在首次写入时生效。"""
        sql = """
            INSERT INTO report_messages (report_id, guild_id, channel_id, message_id, deleted, insert_date, update_date)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(report_id, guild_id, channel_id) DO UPDATE SET
                message_id = excluded.message_id,
                deleted = excluded.deleted,
                update_date = excluded.update_date;
        """
        await self._execute(sql, (report_id, guild_id, channel_id, message_id, deleted, insert_date, update_date))

    async def _run_migrations(self):
        """
        执行基于版本的数据库迁移。
        此方法会检查 `src/migrations/versions` 目录下的 .sql 文件，
        并与数据库中存储的 `user_version` 进行比较，然后按顺序应用所有新的迁移。
        """
        logger.info("正在检查并运行数据库迁移...")

        migrations_path = pathlib.Path(__file__).parent.parent / "migrations" / "versions"
        if not migrations_path.is_dir():
            logger.warning(f"迁移目录不存在，跳过迁移: {migrations_path}")
            return

        async with self.conn.cursor() as cursor:
            await cursor.execute("PRAGMA user_version")
            current_version = (await cursor.fetchone())[0]
        logger.info(f"当前数据库版本: {current_version}")

        try:
            migration_files = sorted(
                migrations_path.glob("*.sql"),
                key=lambda p: int(p.stem.split('_')[0])
            )
        except (ValueError, IndexError):
            logger.error("迁移文件名格式不正确，应为 'XXX_description.sql'。")
            raise

        latest_version = current_version
        for migration_file in migration_files:
            try:
                file_version = int(migration_file.stem.split('_')[0])

                if file_version > current_version:
                    logger.info(f"准备应用迁移脚本: v{file_version} - {migration_file.name}")
                    sql_script = migration_file.read_text(encoding='utf-8')

                    await self.conn.executescript(sql_script)
                    await self.conn.execute(f"PRAGMA user_version = {file_version}")
                    await self.conn.commit()

                    logger.info(f"成功应用迁移脚本并更新数据库版本至: {file_version}")
                    latest_version = file_version
            except Exception:
                logger.error(f"应用迁移脚本失败: {migration_file.name}", exc_info=True)
                await self.conn.rollback()
                raise # 防止机器人以损坏的数据库状态启动

        if latest_version == current_version:
            logger.info("数据库结构已是最新，无需迁移。")
        else:
            logger.info(f"数据库迁移完成，当前版本: {latest_version}")
