"""
服务发现领域实体 - 注册中心返回的服务记录与共享客户端句柄
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Tuple

from .exceptions import NotYetDiscoveredError


def _freeze(metadata: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType(dict(metadata or {}))


@dataclass(frozen=True)
class Node:
    """服务实例节点"""

    id: str
    address: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", _freeze(self.metadata))

    @property
    def port(self) -> str | None:
        return self.metadata.get("port") or None

    @property
    def target(self) -> str:
        """gRPC 拨号地址：address 已带端口时原样返回，否则拼接 metadata 中的 port。"""
        host = self.address
        if host.startswith("["):
            has_port = "]:" in host
        else:
            has_port = host.count(":") == 1
        if has_port or not self.port:
            return host
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        return f"{host}:{self.port}"


@dataclass(frozen=True)
class ServiceRecord:
    """注册中心中一个服务（某一版本）的全部节点"""

    name: str
    nodes: Tuple[Node, ...] = ()
    version: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "nodes", tuple(self.nodes))


@dataclass(frozen=True)
class ClientHandle:
    """共享客户端句柄：传输对象 + 最近一次发现的服务记录。

    句柄是不可变值，刷新时整体替换；``with_records`` 保留原有传输对象。
    """

    transport: Any
    records: Tuple[ServiceRecord, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "records", tuple(self.records))

    @property
    def discovered(self) -> bool:
        return bool(self.records)

    @property
    def primary_service_name(self) -> str:
        if not self.records:
            raise NotYetDiscoveredError()
        return self.records[0].name

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(node for record in self.records for node in record.nodes)

    def with_records(self, records: Iterable[ServiceRecord]) -> "ClientHandle":
        return replace(self, records=tuple(records))
