"""
Start the language runtime server.

The engine reads the listening port from the first line of stdout, so the
port is printed before serving begins.
"""

from __future__ import annotations

import socket
import sys

import uvicorn

from cloudweave.logging import configure_logging
from cloudweave.runtime.api import create_app
from cloudweave.settings import get_settings


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)

    args = sys.argv[1:] if argv is None else argv
    port = int(args[0]) if args else 0

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", port))
    print(sock.getsockname()[1], flush=True)

    config = uvicorn.Config(create_app(), log_level=settings.log_level.lower())
    uvicorn.Server(config).run(sockets=[sock])


if __name__ == "__main__":
    main()
