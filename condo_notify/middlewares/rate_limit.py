"""
Rate Limiting Middleware

Limits requests per client IP on the public endpoints (token verification
is reachable by anyone holding a link).
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Any, List, Iterable, Optional

from aiohttp import web

from condo_notify.config import config


def client_ip(request: web.Request, trust_proxy: Optional[bool] = None) -> str:
    """
    Socket peer address, or the address our proxy saw when TRUSTED_PROXY is set.

    The proxy appends the peer it talked to, so the last X-Forwarded-For
    hop is the only one a client cannot choose.
    """
    if trust_proxy is None:
        trust_proxy = config.TRUSTED_PROXY
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
            if hops:
                return hops[-1]
    return request.remote or "unknown"


class RateLimitMiddleware:
    """
    Sliding window limiter keyed by client IP.

    Only paths listed in `paths` are limited; everything else passes.
    Register `limiter.middleware` on the application.
    """

    def __init__(
        self,
        rate: int = 10,
        per: int = 60,
        paths: Iterable[str] = ("/verify-token",),
        message: str = "Muitas requisições. Aguarde um momento e tente novamente.",
        trust_proxy: Optional[bool] = None,
    ):
        self.rate = rate
        self.per = per
        self.paths = set(paths)
        self.message = message
        self.trust_proxy = config.TRUSTED_PROXY if trust_proxy is None else trust_proxy
        self.requests: Dict[str, List[datetime]] = {}
        self._last_sweep = datetime.now()

        logging.info(
            f"Rate limiter initialized: {rate} requests per {per} seconds "
            f"(forwarded headers {'trusted' if self.trust_proxy else 'ignored'})"
        )

    def _recent(self, ip: str, now: datetime) -> List[datetime]:
        return [t for t in self.requests.get(ip, []) if now - t < timedelta(seconds=self.per)]

    def sweep(self, now: datetime = None):
        """Forget clients whose window is empty"""
        now = now or datetime.now()
        for ip in list(self.requests):
            recent = self._recent(ip, now)
            if recent:
                self.requests[ip] = recent
            else:
                del self.requests[ip]
        self._last_sweep = now

    @web.middleware
    async def middleware(self, request: web.Request, handler):
        if request.path not in self.paths:
            return await handler(request)

        ip = client_ip(request, self.trust_proxy)
        now = datetime.now()

        if now - self._last_sweep >= timedelta(seconds=self.per):
            self.sweep(now)

        recent = self._recent(ip, now)
        if len(recent) >= self.rate:
            self.requests[ip] = recent
            logging.warning(
                f"Rate limit exceeded for {ip}: "
                f"{len(recent)} requests in {self.per}s"
            )
            return web.json_response(
                {"error": self.message},
                status=429,
                headers={"Retry-After": str(self.per)},
            )

        recent.append(now)
        self.requests[ip] = recent
        return await handler(request)

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiter statistics."""
        now = datetime.now()
        active_clients = 0
        total_requests = 0

        for ip in self.requests:
            recent = self._recent(ip, now)
            if recent:
                active_clients += 1
                total_requests += len(recent)

        return {
            "active_clients": active_clients,
            "tracked_clients": len(self.requests),
            "total_requests": total_requests,
            "rate_limit": f"{self.rate}/{self.per}s",
        }
