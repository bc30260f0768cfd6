#!/usr/bin/env python
"""
ASGI entry point for the vida node.
"""

import os

from vida_node.protocol_rpc.fastapi_server import app

application = app

if __name__ == "__main__":
    import uvicorn

    from vida_node.protocol_rpc.logging_config import get_uvicorn_log_config

    # a node owns a single writer, so never more than one worker
    uvicorn.run(
        "asgi:application",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        workers=1,
        log_config=get_uvicorn_log_config(),
        access_log=True,
    )
