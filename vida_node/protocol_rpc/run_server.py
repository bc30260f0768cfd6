#!/usr/bin/env python3
"""
Entry point for running a vida node with proper logging configuration.
Flags override the environment; everything is read once at start.
"""

import argparse

from dotenv import load_dotenv

from vida_node.protocol_rpc.configuration import NodeSettings
from vida_node.protocol_rpc.fastapi_server import create_app
from vida_node.protocol_rpc.logging_config import get_uvicorn_log_config


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replicate a VIDA ledger from the chain feed and serve root hashes to peers."
    )
    parser.add_argument(
        "--peers",
        help="Comma-separated host:port list of peers running the same VIDA",
    )
    parser.add_argument("--start-block", type=int, help="First feed block to apply")
    parser.add_argument("--port", type=int, help="Port of the root hash service")
    parser.add_argument("--host", help="Bind address of the root hash service")
    parser.add_argument("--vida-id", type=int, help="VIDA id to subscribe to")
    parser.add_argument("--rpc-url", help="Chain RPC base URL")
    parser.add_argument("--database-url", help="SQLAlchemy database URL")
    parser.add_argument(
        "--self-address",
        help="This node's own host:port, counted as a matching vote when listed as a peer",
    )
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> NodeSettings:
    return NodeSettings.from_environment().with_overrides(
        peers=args.peers,
        start_block=args.start_block,
        port=args.port,
        host=args.host,
        vida_id=args.vida_id,
        rpc_url=args.rpc_url,
        database_url=args.database_url,
        self_address=args.self_address,
    )


def main(argv=None):
    import uvicorn

    load_dotenv()
    settings = settings_from_args(parse_args(argv))

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        workers=1,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()
