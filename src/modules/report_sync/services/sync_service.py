import asyncio
import logging

from src.modules.report_sync.models import Report, ReportAction, ReportBroadcastError
from src.modules.report_sync.services.reconciler import NotificationReconciler
from src.modules.report_sync.services.report_index_client import ReportIndexClient
from src.modules.report_sync.services.subscription_service import SubscriptionService
from src.modules.report_sync.services.tag_matcher import select_first_match, subscription_matches

logger = logging.getLogger(__name__)

class ReportSyncService:
    """
    举报事件的两个入口：
    1. Webhook 推送的举报，广播给所有匹配的订阅；
    2. 新成员加入服务器时，查询其已有举报并补发到该服务器的订阅频道。
    """

    def __init__(
        self,
        subscription_service: SubscriptionService,
        reconciler: NotificationReconciler,
        report_index: ReportIndexClient,
    ):
        self.subscription_service = subscription_service
        self.reconciler = reconciler
        self.report_index = report_index

    async def broadcast_report(self, action: ReportAction, report: Report) -> int:
        """
        并发处理所有标签匹配的订阅，返回处理的订阅数量。
        任何一个订阅失败都会在全部结束后抛出 ReportBroadcastError，已生效的操作不会回滚。
        """
        action = ReportAction(action)
        loaded = await self.subscription_service.get_all_subscriptions()
        matching = [sub for sub in loaded.subscriptions if subscription_matches(report, sub)]

        log_context = {
            'action': action.value,
            'report_id': report.id,
            'matching': len(matching),
            'total': len(loaded.subscriptions),
            'invalid': len(loaded.errors),
        }
        logger.info("开始广播举报", extra=log_context)

        results = await asyncio.gather(
            *(self.reconciler.reconcile(action, report, sub) for sub in matching),
            return_exceptions=True,
        )

        # 无法加载的订阅同样计入失败，但不影响其他订阅的处理
        failures: list[BaseException] = list(loaded.errors)
        for subscription, result in zip(matching, results):
            if isinstance(result, BaseException):
                failures.append(result)
                logger.error(
                    "向订阅发送举报失败",
                    extra={**log_context, 'guild_id': subscription.guild_id, 'channel_id': subscription.channel_id},
                    exc_info=result,
                )

        if failures:
            raise ReportBroadcastError(failures, len(matching) + len(loaded.errors))

        logger.info("举报广播完成", extra=log_context)
        return len(matching)

    async def process_member_join(self, guild_id: str, member_id: str) -> bool:
        """
        新成员加入时检查其已有举报。
        只对第一组匹配的 (订阅, 举报) 执行 edit：已有消息则更新，否则新建。返回是否触发了同步。
        """
        log_context = {'guild_id': guild_id, 'member_id': member_id}

        report_list = await self.report_index.find_reports_for_user(member_id)
        if report_list.count == 0 or not report_list.results:
            return False

        # 标签无效的订阅已在加载时记录并跳过
        loaded = await self.subscription_service.get_subscriptions_for_guild(guild_id)
        match = select_first_match(loaded.subscriptions, report_list.results)
        if not match:
            logger.debug("新成员的举报与本服务器订阅均不匹配", extra=log_context)
            return False

        subscription, report = match
        logger.info("新成员存在匹配的举报，开始同步", extra={**log_context, 'report_id': report.id, 'channel_id': subscription.channel_id})
        await self.reconciler.reconcile(ReportAction.EDIT, report, subscription)
        return True
