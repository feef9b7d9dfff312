"""Prometheus counters for authentication activity."""

from __future__ import annotations

from prometheus_client import Counter

REGISTRATIONS = Counter(
    "devidentity_registrations_total",
    "Developer registration attempts by outcome.",
    ["outcome"],
)

LOGIN_ATTEMPTS = Counter(
    "devidentity_login_attempts_total",
    "Password authentication attempts by outcome.",
    ["outcome"],
)

TOKEN_REJECTIONS = Counter(
    "devidentity_token_rejections_total",
    "Bearer tokens refused by the session gate, by reason.",
    ["reason"],
)
