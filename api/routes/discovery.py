"""
服务发现状态路由
"""
from fastapi import APIRouter, Depends, Query

from application.services.discovery_session import DiscoverySession
from api.dependencies import get_discovery_session
from core.response import success_response


router = APIRouter(
    prefix="/discovery",
    tags=["服务发现"]
)


@router.get("", summary="服务发现状态")
async def discovery_status(session: DiscoverySession = Depends(get_discovery_session)):
    return success_response(data=session.snapshot())


@router.get("/client", summary="获取已发现的 gRPC 客户端")
async def discovered_client(
    timeout: float = Query(5.0, gt=0, le=60, description="等待首次发现的最长秒数"),
    session: DiscoverySession = Depends(get_discovery_session),
):
    """等待首次服务发现完成；失败时由异常处理器返回 503"""
    handle = await session.wait_discovered(timeout=timeout)
    snapshot = session.snapshot()
    return success_response(
        data={
            "service": handle.primary_service_name,
            "targets": [node.target for node in handle.nodes],
            "records": snapshot["records"],
        }
    )
