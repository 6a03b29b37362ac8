"""
REST API客户端基类

供注册中心等 HTTP 后端复用，包括：
- 自动重试（超时、网络错误、5xx/429）
- 状态码到异常的映射
- 请求/响应调试日志
- 令牌头支持
"""
import asyncio
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass
import httpx
import logging
import time

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

# tenacity 的 before_sleep_log 需要标准库 logger
logger = logging.getLogger(__name__)


@dataclass
class APIResponse:
    """API响应封装"""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        """获取JSON响应"""
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)


class APIError(Exception):
    """API错误基类"""
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[APIResponse] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)

    def __str__(self):
        if self.status_code:
            return f"{self.message} | Status: {self.status_code}"
        return self.message


class RetryableAPIError(APIError):
    """可重试的API错误（5xx/429）"""


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:
    """
    REST API客户端基类

    子类负责拼装具体端点并把响应转换为领域对象
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        max_retries: int = 1,
        retry_delay: float = 0.2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        debug: bool = False
    ):
        """
        初始化API客户端

        Args:
            base_url: API基础URL
            timeout: 请求超时时间（秒）
            max_retries: 单次请求的最大重试次数（不含首次）
            retry_delay: 重试基础延迟（秒）
            transport: 自定义 httpx 传输层（测试时注入 MockTransport）
            debug: 是否记录请求/响应调试日志
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.debug = debug
        self._transport = transport

        self.default_headers = {"Accept": "application/json"}
        self._client: Optional[httpx.AsyncClient] = None

    def set_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        """设置认证令牌"""
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """关闭HTTP客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.lstrip('/')
        return f"{self.base_url}/{endpoint}"

    def _handle_error_response(self, status_code: int, response: APIResponse):
        """处理错误响应：优先使用响应体中的错误信息"""
        error_message = f"API request failed with status {status_code}"
        if isinstance(response.data, dict):
            error_message = response.data.get("message") or response.data.get("error") or error_message
        elif response.raw_content:
            error_message = response.raw_content.decode("utf-8", errors="replace").strip() or error_message

        raise APIError(message=error_message, status_code=status_code, response=response)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """
        发送HTTP请求

        Raises:
            APIError: 重试耗尽或不可重试的错误
        """
        url = self._build_url(endpoint)

        if self.debug:
            logger.debug("API Request: %s %s params=%s", method, url, params)

        async def _send_once() -> APIResponse:
            started = time.perf_counter()
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                headers=self.default_headers,
            )
            elapsed = (time.perf_counter() - started) * 1000

            response_data = None
            if "application/json" in response.headers.get("content-type", ""):
                try:
                    response_data = response.json()
                except json.JSONDecodeError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                raw_content=response.content,
                elapsed_ms=elapsed,
            )
            if self.debug:
                logger.debug("API Response: %s in %.1fms", api_response.status_code, elapsed)

            if api_response.status_code in RETRY_STATUS_CODES:
                if api_response.status_code == 429:
                    try:
                        retry_after = float(api_response.headers.get("retry-after") or 0)
                    except (TypeError, ValueError):
                        retry_after = 0.0
                    if retry_after > 0:
                        await asyncio.sleep(retry_after)
                raise RetryableAPIError(
                    message=f"Transient API error with status {api_response.status_code}",
                    status_code=api_response.status_code,
                    response=api_response,
                )

            if api_response.is_error:
                self._handle_error_response(api_response.status_code, api_response)

            return api_response

        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=before_sleep_log(logger, logging.WARNING)
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise APIError(f"Request timeout after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}") from exc
        except RetryableAPIError as exc:
            if exc.response is not None:
                self._handle_error_response(exc.status_code or exc.response.status_code, exc.response)
            raise APIError(exc.message) from exc
        raise AssertionError("unreachable")  # pragma: no cover

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        """GET请求"""
        return await self._request("GET", endpoint, params=params)
