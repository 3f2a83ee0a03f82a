from typing import Iterable, Optional, Sequence

from src.modules.report_sync.models import InvalidTagIdError, Report, ReportTag, Subscription


def parse_tag_ids(values: Iterable) -> tuple[int, ...]:
    """将数据库中以字符串存储的标签 ID 解析为整数，保持原有顺序。"""
    parsed = []
    for value in values:
        if isinstance(value, bool):
            raise InvalidTagIdError(value)
        try:
            parsed.append(int(str(value).strip(), 10))
        except (TypeError, ValueError):
            raise InvalidTagIdError(value) from None
    return tuple(parsed)


def tags_match(report_tags: Iterable[ReportTag], subscription_tags: Iterable[int]) -> bool:
    """只要有一个共同的标签即视为匹配；订阅标签为空时永远不匹配。"""
    wanted = set(subscription_tags)
    if not wanted:
        return False
    return any(tag.id in wanted for tag in report_tags)


def subscription_matches(report: Report, subscription: Subscription) -> bool:
    return tags_match(report.tags, subscription.tags)


def select_first_match(
    subscriptions: Sequence[Subscription],
    reports: Sequence[Report],
) -> Optional[tuple[Subscription, Report]]:
    """
    按订阅顺序、再按举报顺序，返回第一组匹配的 (订阅, 举报)。
    新成员加入时只处理这一组，其余匹配会被忽略。
    """
    for subscription in subscriptions:
        for report in reports:
            if subscription_matches(report, subscription):
                return subscription, report
    return None
