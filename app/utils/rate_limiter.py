"""
Rate limiting for API endpoints
"""
import time
from collections import defaultdict
from fastapi import Request, HTTPException
from typing import Dict, Iterable, List, Tuple
import logging

logger = logging.getLogger(__name__)

# Paths where a caller submits a secret (account or exam password)
CREDENTIAL_PATH_SUFFIXES = ("/api/auth/login", "/api/auth/forgot-password", "/authenticate")


class RateLimiter:
    """
    In-memory sliding-window rate limiter keyed by client address.
    Credential endpoints get their own, tighter per-minute bucket.
    X-Forwarded-For is only honoured when the peer is a trusted proxy.
    """

    def __init__(
        self,
        requests_per_minute: int = 120,
        requests_per_hour: int = 3000,
        credential_attempts_per_minute: int = 10,
        trusted_proxies: Iterable[str] = (),
    ):
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.credential_attempts_per_minute = credential_attempts_per_minute
        self.trusted_proxies = set(trusted_proxies)

        # Storage: {client_id: [timestamps]}
        self.minute_tracker: Dict[str, List[float]] = defaultdict(list)
        self.hour_tracker: Dict[str, List[float]] = defaultdict(list)
        self.credential_tracker: Dict[str, List[float]] = defaultdict(list)

    def reset(self) -> None:
        self.minute_tracker.clear()
        self.hour_tracker.clear()
        self.credential_tracker.clear()

    def _get_client_id(self, request: Request) -> str:
        """Extract client identifier from request"""
        peer = request.client.host if request.client else "unknown"
        if peer not in self.trusted_proxies:
            return peer

        forwarded = request.headers.get("x-forwarded-for")
        if not forwarded:
            return peer
        # Nearest hop that is not one of our own proxies
        for hop in reversed([h.strip() for h in forwarded.split(",") if h.strip()]):
            if hop not in self.trusted_proxies:
                return hop
        return peer

    @staticmethod
    def _cleanup_old_entries(tracker: Dict[str, List[float]], window_seconds: int, now: float) -> None:
        """Drop timestamps outside the window for every client, and clients left empty"""
        cutoff = now - window_seconds
        for client_id in list(tracker.keys()):
            recent = [ts for ts in tracker[client_id] if ts > cutoff]
            if recent:
                tracker[client_id] = recent
            else:
                del tracker[client_id]

    @staticmethod
    def _reject(limit: int, period: str, retry_after: int) -> HTTPException:
        return HTTPException(
            status_code=429,
            detail={
                "error": "rate_limit_exceeded",
                "message": f"Too many requests. Limit: {limit} requests per {period}",
                "retry_after": retry_after
            }
        )

    def _limits_for(self, request: Request) -> List[Tuple[Dict[str, List[float]], int, int, str]]:
        limits = [
            (self.minute_tracker, self.requests_per_minute, 60, "minute"),
            (self.hour_tracker, self.requests_per_hour, 3600, "hour"),
        ]
        if request.method == "POST" and request.url.path.endswith(CREDENTIAL_PATH_SUFFIXES):
            limits.append((self.credential_tracker, self.credential_attempts_per_minute, 60, "minute"))
        return limits

    async def check_rate_limit(self, request: Request) -> None:
        """
        Check if request exceeds rate limits

        Raises:
            HTTPException: 429 if rate limit exceeded
        """
        client_id = self._get_client_id(request)
        now = time.time()
        limits = self._limits_for(request)

        self._cleanup_old_entries(self.minute_tracker, 60, now)
        self._cleanup_old_entries(self.hour_tracker, 3600, now)
        self._cleanup_old_entries(self.credential_tracker, 60, now)

        for tracker, limit, window, period in limits:
            if len(tracker.get(client_id, ())) >= limit:
                logger.warning(f"Rate limit exceeded ({period}, {limit}): {client_id} {request.url.path}")
                raise self._reject(limit, period, window)

        # Record this request
        for tracker, _, _, _ in limits:
            tracker[client_id].append(now)


# Global instance
from app.config import settings
rate_limiter = RateLimiter(
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR,
    credential_attempts_per_minute=settings.CREDENTIAL_ATTEMPTS_PER_MINUTE,
    trusted_proxies=settings.TRUSTED_PROXIES,
)
