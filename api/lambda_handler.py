"""
AWS Lambda entry point: API Gateway proxy events -> FastAPI app via Mangum.

Handler: api.lambda_handler.handler
"""
import asyncio
from typing import Any, Dict, Optional

from mangum import Mangum

from main import create_app


_loop: Optional[asyncio.AbstractEventLoop] = None

# Lambda has no ASGI lifespan; discovery is not started for the customer API
_asgi_handler = Mangum(create_app(), lifespan="off")


def _ensure_event_loop() -> None:
    """Mangum drives the app on the current event loop; reuse one across warm invocations."""
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    asyncio.set_event_loop(_loop)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    _ensure_event_loop()
    return _asgi_handler(event, context)
