"""
Shared web security helpers (FastAPI-agnostic utilities for routes).

Contains the CSRF same-origin check used by the learning and teaching
adapters. Keeping a single implementation avoids security drift.
"""
from __future__ import annotations

import os
from urllib.parse import urlparse

from fastapi import Request


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    port = p.port if p.port is not None else _default_port(scheme)
    return scheme, p.hostname.lower(), int(port)


def _trust_proxy() -> bool:
    return (os.getenv("LESSONWORK_TRUST_PROXY", "false") or "").lower() == "true"


def _server_origin(request: Request) -> tuple[str, str, int]:
    """Return (scheme, host, port) the server is reachable at.

    X-Forwarded-* headers are only honoured when LESSONWORK_TRUST_PROXY=true.
    """
    if not _trust_proxy():
        scheme = (request.url.scheme or "http").lower()
        host = (request.url.hostname or "").lower()
        port = int(request.url.port) if request.url.port else _default_port(scheme)
        return scheme, host, port

    proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").split(",")[0].strip()
    fwd_host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
    scheme = (proto or request.url.scheme or "http").lower()
    if ":" in fwd_host:
        host_only, port_str = fwd_host.rsplit(":", 1)
        host = host_only.lower()
        try:
            port = int(port_str)
        except ValueError:
            port = _default_port(scheme)
    else:
        host = (fwd_host or (request.url.hostname or "")).lower()
        port = int(request.url.port) if request.url.port else _default_port(scheme)
    fwd_port = (request.headers.get("x-forwarded-port") or "").split(",")[0].strip()
    if fwd_port:
        try:
            port = int(fwd_port)
        except ValueError:
            port = _default_port(scheme)
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow; callers that need a header enforce presence.
    """
    try:
        server = _server_origin(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False
