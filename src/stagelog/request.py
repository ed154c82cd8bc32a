"""Request metadata consumed by the recorder.

Tags:
    stagelog, request, starlette, metadata

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from starlette.requests import Request

FORWARDED_FOR_HEADER = "x-forwarded-for"


@dataclass(frozen=True)
class RequestInfo:
    """Snapshot of the parts of a request that appear in the summary record."""

    method: str
    path: str
    remaining_path: str = ""
    ip: str | None = None
    forwarded_for: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    @property
    def client_ip(self) -> str | None:
        """Forwarded-for address when a proxy supplied one, else the peer address."""
        return self.forwarded_for or self.ip

    @classmethod
    def from_starlette(cls, request: Request) -> RequestInfo:
        """Build from a Starlette request after routing has run.

        ``remaining_path`` is the part of the path no route consumed: empty
        once an endpoint matched, otherwise everything below the mount point.
        """
        scope = request.scope
        path = scope.get("path", request.url.path)

        # Leftmost entry is the originating client
        forwarded_for = None
        forwarded = request.headers.get(FORWARDED_FOR_HEADER)
        if forwarded:
            forwarded_for = forwarded.split(",")[0].strip() or None

        if scope.get("endpoint") is not None:
            remaining = ""
        else:
            root_path = scope.get("root_path", "")
            remaining = path[len(root_path):] if root_path and path.startswith(root_path) else path

        params: dict[str, Any] = {}
        for key in request.query_params.keys():
            values = request.query_params.getlist(key)
            params[key] = values[0] if len(values) == 1 else values
        params.update(scope.get("path_params", {}))

        return cls(
            method=request.method,
            path=path,
            remaining_path=remaining,
            ip=request.client.host if request.client else None,
            forwarded_for=forwarded_for,
            params=params,
        )


__all__ = ["FORWARDED_FOR_HEADER", "RequestInfo"]
