"""
Request ID 中间件
用于生成或透传追踪ID（含 API Gateway 的 requestId），并通过contextvars传递给日志系统
"""
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog

from core.logging_config import get_logger


logger = get_logger("api.access")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    功能：
    1. 依次从请求头、API Gateway 事件（Mangum 注入的 aws.event）获取 request_id，都没有则生成
    2. 将request_id绑定到 structlog contextvars，供日志系统使用
    3. 在响应头中返回request_id，并记录一条访问日志
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or self._gateway_request_id(request)
        if not request_id:
            request_id = str(uuid.uuid4())

        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        logger.info(
            "http_request",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

    @staticmethod
    def _gateway_request_id(request: Request) -> Optional[str]:
        event = request.scope.get("aws.event") or {}
        context = event.get("requestContext") or {}
        return context.get("requestId")
