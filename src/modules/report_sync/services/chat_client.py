import discord
import logging
from typing import Any, Optional, Protocol

from src.core.utils import retry_on_discord_error

logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    """
    同步服务所需的聊天平台能力。
    guild / channel / message 对象对调用方是不透明的，只会原样传回给同一个 ChatClient。
    """

    async def get_guild(self, guild_id: str) -> Optional[Any]:
        ...

    async def get_channel(self, guild: Any, channel_id: str) -> Optional[Any]:
        ...

    async def has_member(self, guild: Any, user_id: str) -> bool:
        ...

    async def fetch_message(self, channel: Any, message_id: str) -> Optional[Any]:
        """消息不存在时返回 None。"""
        ...

    async def send_embed(self, channel: Any, embed: discord.Embed) -> str:
        """发送消息并返回新消息的 ID。"""
        ...

    async def edit_embed(self, message: Any, embed: discord.Embed) -> None:
        ...

    async def delete_message(self, message: Any, reason: str) -> None:
        ...


class DiscordChatClient:
    """基于 discord.py 客户端缓存和 REST 接口的 ChatClient 实现。"""

    def __init__(self, bot: discord.Client):
        self.bot = bot

    async def get_guild(self, guild_id: str) -> Optional[discord.Guild]:
        try:
            return self.bot.get_guild(int(guild_id))
        except (TypeError, ValueError):
            return None

    async def get_channel(self, guild: discord.Guild, channel_id: str) -> Optional[discord.abc.Messageable]:
        try:
            channel = guild.get_channel(int(channel_id))
        except (TypeError, ValueError):
            return None
        if channel is None or not isinstance(channel, discord.abc.Messageable):
            return None
        return channel

    async def has_member(self, guild: discord.Guild, user_id: str) -> bool:
        try:
            return guild.get_member(int(user_id)) is not None
        except (TypeError, ValueError):
            return False

    async def fetch_message(self, channel: discord.abc.Messageable, message_id: str) -> Optional[discord.Message]:
        try:
            return await retry_on_discord_error(
                lambda: channel.fetch_message(int(message_id)),
                f"获取举报消息 (ID: {message_id})"
            )
        except discord.NotFound:
            return None

    async def send_embed(self, channel: discord.abc.Messageable, embed: discord.Embed) -> str:
        # 不重试：发送失败直接抛出，避免重复消息
        message = await channel.send(embed=embed)
        return str(message.id)

    async def edit_embed(self, message: discord.Message, embed: discord.Embed) -> None:
        await retry_on_discord_error(
            lambda: message.edit(embed=embed),
            f"编辑举报消息 (ID: {message.id})"
        )

    async def delete_message(self, message: discord.Message, reason: str) -> None:
        try:
            # discord.py 的 Message.delete 不支持审计日志原因，需要直接调用 HTTP 接口
            await self.bot.http.delete_message(message.channel.id, message.id, reason=reason)
        except discord.NotFound:
            logger.warning("要删除的举报消息已不存在", extra={'message_id': message.id, 'channel_id': message.channel.id})
