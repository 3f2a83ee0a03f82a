# src/modules/report_sync/webhook.py
"""接收举报服务推送的 Webhook。"""

import asyncio
import json
import logging
from typing import Any, Optional, Union

import uvicorn
from fastapi import FastAPI, HTTPException, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.modules.report_sync.models import Report, ReportAction, ReportBroadcastError
from src.modules.report_sync.services.sync_service import ReportSyncService

logger = logging.getLogger(__name__)


class ReportWebhookPayload(BaseModel):
    action: ReportAction
    # 举报服务以 JSON 字符串发送 report，也兼容直接发送对象
    report: Union[str, dict[str, Any]]


def parse_report(raw: Union[str, dict]) -> Report:
    data = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(data, dict):
        raise ValueError("report 必须是一个 JSON 对象")
    return Report.from_dict(data)


def create_webhook_app(sync_service: ReportSyncService) -> FastAPI:
    app = FastAPI(title="Hotline Report Webhook", docs_url=None, redoc_url=None)

    @app.post("/subscription/global", status_code=status.HTTP_204_NO_CONTENT)
    async def global_subscription(payload: ReportWebhookPayload):
        try:
            report = parse_report(payload.report)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("收到无法解析的举报", extra={'action': payload.action.value, 'error': str(e)})
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"无法解析 report: {e}")

        try:
            await sync_service.broadcast_report(payload.action, report)
        except ReportBroadcastError as e:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    'error': str(e),
                    'failed': len(e.failures),
                    'total': e.total,
                    'errors': [repr(failure) for failure in e.failures],
                },
            )
        except Exception as e:
            logger.error("处理举报 Webhook 时出错", extra={'action': payload.action.value, 'report_id': report.id}, exc_info=True)
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={'error': repr(e)})

        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


class WebhookServer:
    """在机器人的事件循环中运行 uvicorn。"""

    def __init__(self, app: FastAPI, host: str, port: int):
        self.config = uvicorn.Config(app, host=host, port=port, log_config=None, access_log=False)
        self.server = uvicorn.Server(self.config)
        self.task: Optional[asyncio.Task] = None

    def start(self):
        if self.task and not self.task.done():
            logger.warning("Webhook 服务已在运行中。")
            return
        self.task = asyncio.get_running_loop().create_task(self.server.serve())
        logger.info(f"Webhook 服务已启动: http://{self.config.host}:{self.config.port}")

    async def stop(self):
        if self.task and not self.task.done():
            self.server.should_exit = True
            await self.task
            logger.info("Webhook 服务已停止。")
