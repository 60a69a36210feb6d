# Middleware package init
"""
ShutterBox Backend — Middleware Package
=========================================

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [CORS] → Route Handler

Rate limiting runs first so rejected requests cost nothing further. The
request id is set before the access log line is written, so both carry
the same id.
"""
