"""
Consul 注册中心适配器 - 通过 HTTP API 查询健康的服务实例
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from core.logging_config import get_logger
from domain.discovery.entity import Node, ServiceRecord
from domain.discovery.exceptions import RegistryUnavailableError
from domain.discovery.registry import ServiceRegistry
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)

CONSUL_TOKEN_HEADER = "X-Consul-Token"


def normalize_address(address: str) -> str:
    """``consul:8500`` -> ``http://consul:8500``；已带 scheme 的地址原样返回。"""
    address = address.strip()
    if not address:
        raise ValueError("registry address must not be empty")
    if "://" not in address:
        address = f"http://{address}"
    return address.rstrip("/")


def parse_health_entries(entries: List[Dict[str, Any]]) -> List[ServiceRecord]:
    """把 /v1/health/service 的返回按服务名+版本分组为 ServiceRecord（保持首次出现顺序）。"""
    grouped: Dict[tuple, List[Node]] = {}
    for entry in entries or []:
        service = entry.get("Service") or {}
        node_info = entry.get("Node") or {}
        name = service.get("Service")
        if not name:
            continue
        meta = {str(k): str(v) for k, v in (service.get("Meta") or {}).items()}
        version = meta.get("version", "")
        port = service.get("Port") or 0
        if port:
            meta["port"] = str(port)
        node = Node(
            id=service.get("ID") or node_info.get("Node") or name,
            address=service.get("Address") or node_info.get("Address") or "",
            metadata=meta,
        )
        grouped.setdefault((name, version), []).append(node)

    return [
        ServiceRecord(name=name, version=version, nodes=tuple(nodes))
        for (name, version), nodes in grouped.items()
    ]


class ConsulRegistry(BaseAPIClient, ServiceRegistry):
    """Consul HTTP API 客户端（只读：服务查询）"""

    def __init__(
        self,
        address: str,
        *,
        datacenter: Optional[str] = None,
        token: Optional[str] = None,
        passing_only: bool = True,
        timeout: float = 5.0,
        max_retries: int = 1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        debug: bool = False,
    ):
        self.address = address
        super().__init__(
            base_url=normalize_address(address),
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
            debug=debug,
        )
        self.datacenter = datacenter
        self.passing_only = passing_only
        if token:
            self.set_token(token, header_name=CONSUL_TOKEN_HEADER, prefix="")

    async def lookup(self, service_name: str) -> List[ServiceRecord]:
        params: Dict[str, Any] = {}
        if self.passing_only:
            params["passing"] = "true"
        if self.datacenter:
            params["dc"] = self.datacenter

        try:
            # 服务名整体作为一个路径段，"/" 与 "?" 也要转义
            response = await self.get(f"v1/health/service/{quote(service_name, safe='')}", params=params)
            entries = response.json()
        except APIError as exc:
            raise RegistryUnavailableError(self.address, str(exc), service_name=service_name) from exc
        except ValueError as exc:
            raise RegistryUnavailableError(
                self.address, f"invalid registry response: {exc}", service_name=service_name
            ) from exc

        if not isinstance(entries, list):
            raise RegistryUnavailableError(
                self.address, "unexpected registry response shape", service_name=service_name
            )

        records = parse_health_entries(entries)
        logger.debug("consul_lookup", service=service_name, records=len(records), entries=len(entries))
        return records
