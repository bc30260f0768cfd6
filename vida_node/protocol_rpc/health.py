# vida_node/protocol_rpc/health.py
import time
from typing import Optional

import psutil
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from vida_node.protocol_rpc.app_lifespan import NodeState
from vida_node.protocol_rpc.dependencies import get_node_state_optional

health_router = APIRouter(tags=["health"])

start_time = time.time()


def _process_metrics() -> dict:
    try:
        process = psutil.Process()
        return {
            "memory_mb": round(process.memory_info().rss / 1024 / 1024, 2),
            "memory_percent": round(process.memory_percent(), 2),
            "cpu_percent": round(process.cpu_percent(), 2),
        }
    except psutil.Error as e:
        logger.debug(f"Process metrics unavailable: {e}")
        return {}


@health_router.get("/health")
def health_check(
    node: Optional[NodeState] = Depends(get_node_state_optional),
):
    """Checkpoint progress, validation counters and process metrics."""
    if node is None:
        return {"status": "initializing"}

    subscriber = node.subscriber
    worker = node.worker

    body = {
        "status": "healthy",
        "timestamp": time.time(),
        "uptime_seconds": round(time.time() - start_time, 2),
        "checkpoint": {
            "committed": node.ledger.get_committed_checkpoint(),
            "next_block": subscriber.next_block,
            "phase": worker.phase.value,
        },
        "validation": {
            "committed_checkpoints": worker.committed_checkpoints,
            "rejected_checkpoints": worker.rejected_checkpoints,
            "consecutive_rejections": node.recovery.consecutive_rejections,
            "peers": len(node.validator.peers),
            "last_outcome": worker.last_outcome.to_dict()
            if worker.last_outcome
            else None,
        },
        "process": _process_metrics(),
    }

    if subscriber.fatal_error is not None:
        body["status"] = "failed"
        body["error"] = str(subscriber.fatal_error)
        return JSONResponse(status_code=503, content=body)

    if node.recovery.consecutive_rejections >= node.recovery.alert_after:
        body["status"] = "degraded"

    return body
