# src/modules/report_sync/services/reconciler.py

import discord
import logging
from typing import Callable

from src.modules.report_sync.models import Report, ReportAction, ReportMessage, Subscription, utcnow
from src.modules.report_sync.services.chat_client import ChatClient
from src.modules.report_sync.services.embed_builder import build_report_embed
from src.modules.report_sync.services.report_message_service import ReportMessageService

logger = logging.getLogger(__name__)

DELETE_REASON = "Deleted Report"


class NotificationReconciler:
    """
    让某个订阅频道中的举报消息与举报的当前动作 (new / edit / delete) 保持一致。

    是否“已有消息”只以 ReportMessageService 中的记录为准。
    同一个 (举报, 订阅) 内部的 读记录 -> 调用 Discord -> 写记录 严格按顺序执行。
    """

    def __init__(
        self,
        chat: ChatClient,
        report_messages: ReportMessageService,
        embed_builder: Callable[[Report], discord.Embed] = build_report_embed,
    ):
        self.chat = chat
        self.report_messages = report_messages
        self.embed_builder = embed_builder

    async def reconcile(self, action: ReportAction, report: Report, subscription: Subscription):
        action = ReportAction(action)
        log_context = {
            'action': action.value,
            'report_id': report.id,
            'guild_id': subscription.guild_id,
            'channel_id': subscription.channel_id,
        }

        guild = await self.chat.get_guild(subscription.guild_id)
        if not guild:
            logger.error("订阅对应的服务器不可用", extra=log_context)
            return

        channel = await self.chat.get_channel(guild, subscription.channel_id)
        if not channel:
            logger.error("订阅对应的频道不可用", extra=log_context)
            return

        report_message = await self.report_messages.find(report.id, subscription.guild_id, subscription.channel_id)

        # 没有记录的 edit 与 new 走同一条路径
        if action is ReportAction.EDIT and report_message:
            await self._edit(channel, report, report_message, log_context)
            return

        if action is ReportAction.DELETE:
            if not report_message:
                logger.debug("没有可删除的举报消息，跳过", extra=log_context)
                return
            await self._delete(channel, report_message, log_context)
            return

        if subscription.on_users_in_server and not await self._has_reported_users(guild, report):
            logger.debug("被举报用户均不在该服务器中，跳过", extra=log_context)
            return

        await self._create(channel, report, subscription, report_message, log_context)

    async def _has_reported_users(self, guild, report: Report) -> bool:
        for user in report.reported_users:
            if await self.chat.has_member(guild, user.id):
                return True
        return False

    async def _edit(self, channel, report: Report, report_message: ReportMessage, log_context: dict):
        if report_message.deleted:
            # 已删除的举报不会因 edit 被重新发送，只有 new 可以覆盖
            report_message.update_date = utcnow()
            await self.report_messages.save(report_message)
            logger.debug("举报消息已标记为删除，忽略 edit", extra=log_context)
            return

        embed = self.embed_builder(report)
        message = await self.chat.fetch_message(channel, report_message.message_id)
        if message:
            await self.chat.edit_embed(message, embed)
            logger.info("已更新举报消息", extra={**log_context, 'message_id': report_message.message_id})
        else:
            # 原消息已在外部被删除，重新发送
            report_message.message_id = await self.chat.send_embed(channel, embed)
            logger.info("原举报消息不存在，已重新发送", extra={**log_context, 'message_id': report_message.message_id})

        report_message.update_date = utcnow()
        await self.report_messages.save(report_message)

    async def _delete(self, channel, report_message: ReportMessage, log_context: dict):
        if report_message.deleted:
            # 已经标记删除，不再调用 Discord
            report_message.update_date = utcnow()
            await self.report_messages.save(report_message)
            logger.debug("举报消息已标记为删除", extra=log_context)
            return

        message = await self.chat.fetch_message(channel, report_message.message_id)
        report_message.deleted = True
        if message:
            await self.chat.delete_message(message, DELETE_REASON)
            report_message.update_date = utcnow()
            logger.info("已删除举报消息", extra={**log_context, 'message_id': report_message.message_id})

        await self.report_messages.save(report_message)

    async def _create(self, channel, report: Report, subscription: Subscription, report_message, log_context: dict):
        embed = self.embed_builder(report)
        message_id = await self.chat.send_embed(channel, embed)

        now = utcnow()
        if not report_message:
            report_message = ReportMessage(
                report_id=report.id,
                guild_id=subscription.guild_id,
                channel_id=subscription.channel_id,
                message_id=message_id,
                insert_date=now,
            )

        report_message.message_id = message_id
        report_message.deleted = False
        report_message.update_date = now
        await self.report_messages.save(report_message)
        logger.info("已发送举报消息", extra={**log_context, 'message_id': message_id})
