"""Entry point for running the toolgate chat server.

Usage:
    python -m toolgate
    python -m toolgate --port 4000 --verbose 3 --project ./myproject

Serves the chat WebSocket on ``/ws`` plus ``/health`` and ``/metrics``.
ANTHROPIC_API_KEY must be set in the environment or in ``.env.secrets``.
"""

from __future__ import annotations

import argparse
import os
import re
import sys

from toolgate.logging import get_logger, setup_logging

log = get_logger()

_ENV_REF = re.compile(r"\$\{([^}]+)\}")

_UVICORN_LEVELS = {0: "error", 1: "warning", 2: "info", 3: "info", 4: "debug"}


def _expand_env_vars() -> None:
    """Expand ${VAR_NAME} references inside environment variable values.

    Lets a service definition write ``WORKSPACE_DIR=${HOME}/workspace``.
    Unknown names are left as-is.
    """
    # Iterate over a copy since we're modifying os.environ
    for key, value in list(os.environ.items()):

        def replace_var(match: re.Match[str]) -> str:
            return os.environ.get(match.group(1), match.group(0))

        expanded = _ENV_REF.sub(replace_var, value)
        if expanded != value:
            os.environ[key] = expanded
            log.debug("Expanded env var: %s", key)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="toolgate",
        description="Streaming LLM chat server with human-approved file creation",
    )
    parser.add_argument("--host", help="Interface to bind (default: config server.host)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: config server.port)")
    parser.add_argument(
        "--verbose",
        "-v",
        type=int,
        choices=range(0, 5),
        metavar="N",
        help="Verbosity 0-4: errors, warnings, info, verbose, trace",
    )
    parser.add_argument("--project", help="Project directory holding .toolgate/config.yaml")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run the toolgate server."""
    import uvicorn

    from toolgate.config import fetch_secret, load_config
    from toolgate.server import create_app

    args = _parse_args(argv)
    _expand_env_vars()

    # Load config before logging so we can use config.logging settings
    config = load_config(project_root=args.project)
    if args.verbose is not None:
        config.logging.verbose = args.verbose
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    setup_logging(config.logging)
    log.info("bootstrap_starting")

    if not fetch_secret("ANTHROPIC_API_KEY"):
        log.error("missing_env_anthropic_api_key")
        sys.exit(1)

    log.info(
        "Configuration loaded (model=%s, workspace=%s, origins=%s)",
        config.llm.model,
        config.workspace.root,
        ",".join(config.server.allowed_origins),
    )

    app = create_app(config)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.server.host,
            port=config.server.port,
            log_level=_UVICORN_LEVELS.get(config.logging.verbose, "info"),
            access_log=False,
        )
    )
    log.info("http_server_listening host=%s port=%d", config.server.host, config.server.port)
    server.run()


if __name__ == "__main__":
    main()
