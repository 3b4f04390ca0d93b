# Middleware package init
"""
ERP Gateway - Middleware Package
=================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    - Request ID first, so every log line of the request (vendor calls
      included) carries the correlation ID.
    - Logging records status and duration once the response is ready.
"""
