"""Health check API endpoints for monitoring and load balancer integration."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def basic_health_check() -> Dict[str, Any]:
    """Basic health check that returns system status."""
    return {
        "status": "healthy",
        "service": "raila-circles",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/health/live")
def liveness_probe() -> Dict[str, Any]:
    """Kubernetes liveness probe."""
    return {
        "status": "alive",
        "message": "Application is responsive"
    }


@router.get("/health/ready")
async def readiness_probe(request: Request) -> Dict[str, Any]:
    """Readiness probe reporting the chain connection state."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        return {
            "status": "not_ready",
            "checks": {"services": {"status": "unhealthy", "message": "Not initialized"}}
        }

    checks: Dict[str, Any] = {"services": {"status": "healthy"}}
    if services.blockchain_provider is not None:
        checks["blockchain"] = await services.blockchain_provider.get_chain_health()

    ready = all(check.get("status") == "healthy" for check in checks.values())
    return {
        "status": "ready" if ready else "degraded",
        "checks": checks
    }
