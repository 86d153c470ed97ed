"""Run the gateway under uvicorn."""
from __future__ import annotations
import argparse
import logging
import os
from dataclasses import replace

import uvicorn

from textgen_gateway.common.config import Settings, load_settings
from textgen_gateway.common.logging_setup import setup_logging
from textgen_gateway.serve.fastapi_app import create_app

LOGGER = logging.getLogger("textgen.serve.server")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Serve the text generation gateway")
    ap.add_argument("--config", default=os.getenv("GATEWAY_CONFIG"), help="YAML config path")
    ap.add_argument("--host", default=None, help="Bind address (overrides HOST)")
    ap.add_argument("--port", type=int, default=None, help="Bind port (overrides PORT)")
    ap.add_argument("--log-level", default=None, help="Log level (overrides LOG_LEVEL)")
    return ap


def resolve_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_yaml(args.config) if args.config else load_settings()
    overrides = {
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level,
    }
    return replace(settings, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = resolve_settings(args)
    setup_logging(settings.log_level)
    LOGGER.info("Listening on %s:%s", settings.host, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
