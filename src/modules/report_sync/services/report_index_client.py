import httpx
import logging
from typing import Optional

from src.modules.report_sync.models import ReportList

logger = logging.getLogger(__name__)

class ReportIndexClient:
    """
    外部举报 API 的只读客户端。
    只实现本服务需要的查询：按被举报用户查找举报。
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {'Accept': 'application/json'}
        if token:
            headers['Authorization'] = f"Bearer {token}"
        self.client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def find_reports_for_user(self, user_id: str) -> ReportList:
        """`GET /report?reported=<user_id>`。非 2xx 状态码会抛出 httpx.HTTPStatusError。"""
        response = await self.client.get('/report', params={'reported': user_id})
        response.raise_for_status()
        report_list = ReportList.from_dict(response.json())
        logger.debug("查询用户举报完成", extra={'user_id': user_id, 'count': report_list.count})
        return report_list

    async def close(self):
        await self.client.aclose()
