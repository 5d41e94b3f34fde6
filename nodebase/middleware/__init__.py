# Middleware package init
"""
NodeBase Backend: Middleware Package
=====================================

Middleware Chain (outermost first):
    Request → [Request ID] → [Logging] → [Session] → [GZip] → [CORS] → Route

    - Request ID runs first so every later log line carries the id.
    - Logging sees the final status code and total duration.
    - Session decodes the signed cookie before the route guards read it.
"""
