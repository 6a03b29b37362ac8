"""
配置文件 - 项目配置管理
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from pydantic import model_validator


class GrpcTlsSettings(BaseModel):
    enabled: bool = False
    cert: Optional[str] = None
    key: Optional[str] = None
    ca: Optional[str] = None


class GrpcClientSettings(BaseModel):
    tls: GrpcTlsSettings = Field(default_factory=GrpcTlsSettings)
    # Override the TLS authority when node addresses are raw IPs
    server_name_override: Optional[str] = None
    keepalive_time_ms: int = 30_000
    max_receive_message_length: int = 4 * 1024 * 1024
    health_check_timeout: float = 3.0
    # Seconds a registry lookup is reused by GrpcTransport.resolve; 0 looks up on every call
    resolve_cache_ttl: float = Field(default=30.0, ge=0)


class RetrySettings(BaseModel):
    # Default: fixed 5s backoff, unlimited attempts
    backoff: float = 5.0
    max_attempts: Optional[int] = None
    exponential: bool = False
    max_backoff: float = 60.0
    jitter: float = 0.0

    @field_validator("backoff", "max_backoff", "jitter")
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry intervals must be >= 0")
        return v

    @field_validator("max_attempts")
    @classmethod
    def _positive_attempts(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("retry.max_attempts must be >= 1 (or unset for unlimited)")
        return v


class DiscoverySettings(BaseModel):
    enabled: bool = False
    registry_address: str = "localhost:8500"
    service_name: str = ""
    datacenter: Optional[str] = None
    token: Optional[str] = None
    passing_only: bool = True

    # Registry HTTP requests
    request_timeout: float = 5.0
    request_retries: int = 1

    # None waits until discovery/setup completes
    acquire_timeout: Optional[float] = None
    # None: stop after the first successful discovery
    refresh_interval: Optional[float] = None

    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("refresh_interval", "acquire_timeout")
    @classmethod
    def _positive_or_none(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("must be > 0 when set")
        return v


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="Customer Manager")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")

    # 日志配置
    LOG_LEVEL: Optional[str] = Field(default=None, description="未设置时 DEBUG 模式为 DEBUG，否则 INFO")
    LOG_JSON: bool = Field(default=False, description="非 DEBUG 环境始终输出 JSON")

    # CORS配置
    CORS_ORIGINS: list = Field(default=["http://localhost:3000", "http://localhost:8000"])

    # 服务发现 / gRPC 客户端（嵌套模型，环境变量如 DISCOVERY__SERVICE_NAME）
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    grpc_client: GrpcClientSettings = Field(default_factory=GrpcClientSettings)

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def _validate_discovery(self):
        # 启用服务发现时，注册中心地址与服务名都必须非空
        if self.discovery.enabled:
            if not self.discovery.registry_address.strip():
                raise ValueError("DISCOVERY__REGISTRY_ADDRESS 未配置")
            if not self.discovery.service_name.strip():
                raise ValueError("DISCOVERY__SERVICE_NAME 未配置")
        return self

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                import json
                try:
                    arr = json.loads(s)
                    if isinstance(arr, list):
                        return arr
                except ValueError:
                    pass
            if "," in s:
                return [item.strip() for item in s.split(",") if item.strip()]
            return [s]
        return v


settings = Settings()
