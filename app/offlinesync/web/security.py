from __future__ import annotations

import ipaddress
import os
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse

ALLOWED_NETS_ENV = "ALLOWED_NETS"
DEFAULT_ALLOWED_NETS = "127.0.0.1/32"


@dataclass
class Allowlist:
    """Client networks the API answers; an empty list admits any parseable address."""

    networks: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def parse(cls, entries: Iterable[str]) -> "Allowlist":
        networks = []
        for entry in entries:
            value = entry.strip()
            if not value:
                continue
            try:
                networks.append(ipaddress.ip_network(value, strict=False))
            except ValueError:
                return cls(error=f"invalid allowed network: {value}")
        return cls(networks=networks)

    def denial(self, host: str) -> tuple[int, str] | None:
        """``(status, reason)`` when ``host`` must be refused, else ``None``."""
        if self.error:
            return 503, f"access denied: allowlist misconfigured ({self.error})"
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            return 403, "access denied: unrecognized client address"
        if self.networks and not any(address in net for net in self.networks):
            return 403, "access denied: client address not in allowed networks"
        return None


class NetworkAllowlistMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, allowed_nets: Iterable[str]):
        super().__init__(app)
        self.allowlist = Allowlist.parse(allowed_nets)

    async def dispatch(self, request: Request, call_next):
        denied = self.allowlist.denial(request.client.host if request.client else "")
        if denied is not None:
            status_code, reason = denied
            return PlainTextResponse(reason, status_code=status_code)
        return await call_next(request)


def get_allowed_nets(environ: Mapping[str, str] | None = None) -> list[str]:
    env = os.environ if environ is None else environ
    raw = env.get(ALLOWED_NETS_ENV, DEFAULT_ALLOWED_NETS)
    return [s.strip() for s in raw.split(",") if s.strip()]
