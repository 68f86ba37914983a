"""Minimal sd_notify client for running the bridge as a systemd (user) unit.

Messages go to the datagram socket named by ``$NOTIFY_SOCKET``; when the
variable is unset every call is a no-op.
"""

from __future__ import annotations

import logging
import os
import socket

_logger = logging.getLogger(__name__)


def _notify(*fields: str) -> None:
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return
    if addr.startswith("@"):
        addr = "\0" + addr[1:]
    message = "\n".join(fields)
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.sendto(message.encode(), addr)
    except OSError as exc:
        _logger.debug("[sd_notify] Failed to send %r: %s", message, exc)


def ready(status: str | None = None) -> None:
    if status:
        _notify("READY=1", f"STATUS={status}")
    else:
        _notify("READY=1")


def status(text: str) -> None:
    _notify(f"STATUS={text}")


def stopping() -> None:
    _notify("STOPPING=1")
