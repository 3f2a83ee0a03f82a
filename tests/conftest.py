# tests/conftest.py
import itertools
import json

import pytest

from src.core.database import Database
from src.modules.report_sync.models import Report
from src.modules.report_sync.services.reconciler import NotificationReconciler
from src.modules.report_sync.services.report_message_service import ReportMessageService
from src.modules.report_sync.services.subscription_service import SubscriptionService


class FakeMessage:
    def __init__(self, message_id: str, channel: "FakeChannel", embed):
        self.id = message_id
        self.channel = channel
        self.embed = embed


class FakeChannel:
    def __init__(self, channel_id: str):
        self.id = channel_id
        self.messages: dict[str, FakeMessage] = {}


class FakeGuild:
    def __init__(self, guild_id: str, channel_ids=(), member_ids=()):
        self.id = guild_id
        self.channels = {cid: FakeChannel(cid) for cid in channel_ids}
        self.members = set(member_ids)


class FakeChatClient:
    """内存中的 ChatClient，记录每一次写操作。"""

    def __init__(self):
        self.guilds: dict[str, FakeGuild] = {}
        self.calls: list[tuple] = []
        self._ids = itertools.count(1000)

    def add_guild(self, guild_id: str, channel_ids=(), member_ids=()) -> FakeGuild:
        guild = FakeGuild(guild_id, channel_ids, member_ids)
        self.guilds[guild_id] = guild
        return guild

    def channel(self, guild_id: str, channel_id: str) -> FakeChannel:
        return self.guilds[guild_id].channels[channel_id]

    def calls_of(self, kind: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == kind]

    async def get_guild(self, guild_id):
        return self.guilds.get(guild_id)

    async def get_channel(self, guild, channel_id):
        return guild.channels.get(channel_id)

    async def has_member(self, guild, user_id):
        return user_id in guild.members

    async def fetch_message(self, channel, message_id):
        return channel.messages.get(message_id)

    async def send_embed(self, channel, embed):
        message_id = str(next(self._ids))
        channel.messages[message_id] = FakeMessage(message_id, channel, embed)
        self.calls.append(('send', channel.id, message_id))
        return message_id

    async def edit_embed(self, message, embed):
        message.embed = embed
        self.calls.append(('edit', message.channel.id, message.id))

    async def delete_message(self, message, reason):
        message.channel.messages.pop(message.id, None)
        self.calls.append(('delete', message.channel.id, message.id, reason))


def make_report(report_id=42, tag_ids=(5,), reported=("U1",), **overrides) -> Report:
    data = {
        "id": report_id,
        "reason": "x",
        "tags": [{"id": tag_id, "name": f"tag-{tag_id}"} for tag_id in tag_ids],
        "links": [],
        "reportedUsers": [{"id": user_id} for user_id in reported],
        "confirmationUsers": [],
        "insertDate": "2024-01-02T03:04:05Z",
        "updateDate": "2024-01-03T03:04:05Z",
    }
    data.update(overrides)
    return Report.from_dict(data)


async def insert_subscription(db: Database, guild_id, channel_id, tags, on_users_in_server=False) -> int:
    """订阅由外部工具维护，测试中直接写表。"""
    async with db.conn.cursor() as cursor:
        await cursor.execute(
            "INSERT INTO subscriptions (guild_id, channel_id, tags, on_users_in_server) VALUES (?, ?, ?, ?)",
            (guild_id, channel_id, json.dumps([str(t) for t in tags]), on_users_in_server),
        )
        await db.conn.commit()
        return cursor.lastrowid


async def count_report_messages(db: Database, report_id: int) -> int:
    async with db.conn.execute("SELECT COUNT(id) FROM report_messages WHERE report_id = ?", (report_id,)) as cursor:
        return (await cursor.fetchone())[0]


@pytest.fixture
async def db():
    database = Database(":memory:")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def chat():
    return FakeChatClient()


@pytest.fixture
def report_messages(db):
    return ReportMessageService(db)


@pytest.fixture
def subscriptions(db):
    return SubscriptionService(db)


@pytest.fixture
def reconciler(chat, report_messages):
    return NotificationReconciler(chat, report_messages)
