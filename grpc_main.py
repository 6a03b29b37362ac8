import asyncio
import sys

import grpc

from core.config import settings
from core.logging_config import configure_logging, get_logger
from domain.discovery.exceptions import DiscoveryError
from grpc_app.client import GrpcTransport
from infrastructure.discovery import create_discovery_session


logger = get_logger(__name__)


async def main() -> int:
    """Discover the configured gRPC service and run one health check against it."""
    if not settings.discovery.enabled:
        logger.warning("discovery_disabled", message="Service discovery disabled by config (DISCOVERY__ENABLED=false)")
        return 1

    session = create_discovery_session(settings.discovery, settings.grpc_client, debug=settings.DEBUG)
    try:
        handle = await session.wait_discovered()
        logger.info(
            "grpc_client_ready",
            service=handle.primary_service_name,
            targets=[node.target for node in handle.nodes],
        )
        transport: GrpcTransport = handle.transport
        serving = await transport.check_health(
            handle.primary_service_name,
            timeout=settings.grpc_client.health_check_timeout,
        )
        logger.info("grpc_health_check", service=handle.primary_service_name, serving=serving)
        return 0 if serving else 2
    except DiscoveryError as exc:
        logger.error("grpc_client_unavailable", error=str(exc))
        return 1
    except grpc.aio.AioRpcError as exc:
        logger.error("grpc_health_check_failed", code=exc.code().name, details=exc.details())
        return 2
    finally:
        await session.close()
        await session.registry.close()


if __name__ == "__main__":
    configure_logging()
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("grpc_probe_interrupted")
        sys.exit(130)
