"""Path and header tables shared by the HTTP middleware."""

# Every path under one of these requires a bearer token
PROTECTED_PREFIXES = (
    "/users",
    "/tasks",
    "/auth/me",
    "/auth/refresh",
    "/auth/logout",
    "/mail/send-email",
)

AUTH_ROUTE_PREFIX = "/auth"

# Not written to the request log
IGNORED_LOG_PATHS = {"/health", "/favicon.ico", "/docs", "/openapi.json"}

REQUEST_ID_HEADER = "X-Request-ID"

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-DNS-Prefetch-Control": "off",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def matches_prefix(path: str, prefixes) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in prefixes)
