# src/modules/report_sync/models.py

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ReportAction(str, Enum):
    NEW = "new"
    EDIT = "edit"
    DELETE = "delete"


class InvalidTagIdError(ValueError):
    """订阅中的标签 ID 无法解析为整数。"""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"无效的标签 ID: {value!r}")


class ReportBroadcastError(Exception):
    """
    广播举报时至少有一个订阅处理失败。
    已经生效的副作用（已发送的消息、已写入的记录）不会回滚。
    """

    def __init__(self, failures: list[BaseException], total: int):
        self.failures = failures
        self.total = total
        super().__init__(f"{len(failures)}/{total} 个订阅处理失败")


def parse_datetime(value: Any) -> Optional[datetime]:
    """解析 ISO 8601 时间字符串，兼容结尾的 'Z'。无时区信息时按 UTC 处理。"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReportTag:
    id: int
    name: str


@dataclass
class ReportedUser:
    id: str


@dataclass
class Report:
    """
    外部举报服务中的一条举报。本服务只读，从不修改。
    """
    id: int
    tags: list[ReportTag] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    reported_users: list[ReportedUser] = field(default_factory=list)
    confirmation_users: list[Any] = field(default_factory=list)
    reason: Optional[str] = None
    insert_date: Optional[datetime] = None
    update_date: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Report":
        """从举报 API 的 JSON (camelCase) 构造。"""
        return cls(
            id=int(data["id"]),
            reason=data.get("reason") or None,
            tags=[ReportTag(id=int(tag["id"]), name=str(tag.get("name", ""))) for tag in data.get("tags") or []],
            links=[str(link) for link in data.get("links") or []],
            reported_users=[ReportedUser(id=str(user["id"])) for user in data.get("reportedUsers") or []],
            confirmation_users=list(data.get("confirmationUsers") or []),
            insert_date=parse_datetime(data.get("insertDate")),
            update_date=parse_datetime(data.get("updateDate")),
        )

    @property
    def tag_ids(self) -> set[int]:
        return {tag.id for tag in self.tags}


@dataclass
class ReportList:
    """`GET /report` 的返回结果。"""
    count: int
    results: list[Report] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ReportList":
        results = [Report.from_dict(item) for item in data.get("results") or []]
        return cls(count=int(data.get("count", len(results))), results=results)


@dataclass
class Subscription:
    """
    某个服务器/频道对特定标签举报的订阅。
    对应数据库中的 'subscriptions' 表。tags 在加载时即被解析为整数。
    """
    guild_id: str
    channel_id: str
    tags: tuple[int, ...] = ()
    on_users_in_server: bool = False
    id: Optional[int] = None


@dataclass
class ReportMessage:
    """
    一条举报在某个频道中对应的消息。
    对应数据库中的 'report_messages' 表，唯一键为 (report_id, guild_id, channel_id)。
    """
    report_id: int
    guild_id: str
    channel_id: str
    message_id: str
    deleted: bool = False
    insert_date: datetime = field(default_factory=utcnow)
    update_date: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "ReportMessage":
        return cls(
            id=row.get("id"),
            report_id=int(row["report_id"]),
            guild_id=str(row["guild_id"]),
            channel_id=str(row["channel_id"]),
            message_id=str(row["message_id"]),
            deleted=bool(row.get("deleted", False)),
            insert_date=parse_datetime(row.get("insert_date")) or utcnow(),
            update_date=parse_datetime(row.get("update_date")) or utcnow(),
        )


@dataclass
class LoadedSubscriptions:
    """加载订阅的结果。标签无法解析的行不会影响其他行，错误单独收集。"""
    subscriptions: list[Subscription] = field(default_factory=list)
    errors: list[InvalidTagIdError] = field(default_factory=list)
