from __future__ import annotations

import threading
import time
from typing import Dict, Tuple

from flask import current_app, request, session

from cotiz.errors import UserActionError


# Token-bearing routes are reachable without login.
PUBLIC_TOKEN_PREFIXES = ("/api/r/", "/api/fornecedor/cadastro/", "/api/invitation-response/")


class SimpleRateLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, int]] = {}

    def allow(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.monotonic()
        with self._lock:
            start, count = self._entries.get(key, (now, 0))
            if now - start >= window_seconds:
                start = now
                count = 0
            count += 1
            self._entries[key] = (start, count)
            if len(self._entries) > 10_000:
                cutoff = now - (window_seconds * 2)
                self._entries = {
                    cached_key: value
                    for cached_key, value in self._entries.items()
                    if value[0] >= cutoff
                }
            retry_after = max(0, int(window_seconds - (now - start)))
            return count <= limit, retry_after

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


_RATE_LIMITER = SimpleRateLimiter()


def _is_public_token_path(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in PUBLIC_TOKEN_PREFIXES)


def _rate_limit_key(public: bool) -> str:
    ip = str(request.remote_addr or "").strip() or "unknown"
    if public:
        # One bucket per address for every token route.
        return f"{ip}|public|{request.method}"
    user = str(session.get("user_email") or "").strip().lower() or "anon"
    route = request.url_rule.rule if request.url_rule else request.path
    return f"{ip}|{user}|{request.method}|{route}"


def enforce_rate_limit():
    if not bool(current_app.config.get("RATE_LIMIT_ENABLED", True)):
        return None
    if request.method == "OPTIONS":
        return None
    if not request.path.startswith("/api/"):
        return None

    public = _is_public_token_path(request.path)
    window_seconds = max(1, int(current_app.config.get("RATE_LIMIT_WINDOW_SECONDS", 60) or 60))
    if public:
        max_requests = max(1, int(current_app.config.get("PUBLIC_RATE_LIMIT_MAX_REQUESTS", 60) or 60))
    else:
        max_requests = max(1, int(current_app.config.get("RATE_LIMIT_MAX_REQUESTS", 300) or 300))
    allowed, retry_after = _RATE_LIMITER.allow(
        _rate_limit_key(public),
        limit=max_requests,
        window_seconds=window_seconds,
    )
    if allowed:
        return None
    raise UserActionError(
        code="rate_limit_exceeded",
        message_key="rate_limit_exceeded",
        http_status=429,
        critical=False,
        payload={"retry_after": retry_after},
    )


def apply_security_headers(response):
    if not bool(current_app.config.get("SECURITY_HEADERS_ENABLED", True)):
        return response
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    if request.path.startswith("/api/"):
        response.headers.setdefault("Cache-Control", "no-store")
    if request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


def reset_rate_limiter_for_tests() -> None:
    _RATE_LIMITER.reset()
