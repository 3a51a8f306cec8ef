# Middleware package init
"""
Snapcheck Backend — Middleware Package
========================================

What:  Cross-cutting concerns applied to every API request.

Middleware Chain (execution order):
    Request → [Rate Limit] → [Request ID] → [Access Log] → [GZip] → [CORS] → Route

    1. Rate Limit first: abusive clients are rejected before any work
    2. Request ID: correlation id stored in a ContextVar for every log line
    3. Access Log: method, path, status and duration of the request

Responses travel back through the chain in reverse, which is how the
request id ends up in the X-Request-ID response header.
"""
