"""Health endpoint for RelayChat."""

from typing import Any

from fastapi import APIRouter, Request

from ..app.lifespan_shutdown import ShutdownState

monitoring_router = APIRouter(tags=["monitoring"])


@monitoring_router.get("/health")
async def get_health(request: Request) -> dict[str, Any]:
    """Report liveness, lifecycle state and the number of open connections."""
    container = request.app.state.container
    coordinator = container.shutdown_coordinator
    return {
        "status": "ok" if coordinator.state == ShutdownState.RUNNING else "shutting_down",
        "state": coordinator.state.value,
        "accepting_connections": container.handshake_gate.is_accepting,
        "open_connections": len(container.registry),
        "participants": len(container.registry.snapshot_identities()),
    }
