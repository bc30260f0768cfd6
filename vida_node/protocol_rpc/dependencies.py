"""FastAPI dependency functions for node handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, Request, status

from vida_node.protocol_rpc.app_lifespan import NodeState


def _get_app_state(request: Request) -> Any:
    state = getattr(request.app, "state", None)
    if state is None:
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Application state is not configured",
        )
    return state


def get_node_state_optional(request: Request) -> Optional[NodeState]:
    """The running node, or None while the lifespan has not built it yet."""
    return getattr(_get_app_state(request), "node", None)
