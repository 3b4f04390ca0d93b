# Routes package init
"""
ERP Gateway - API Routes Package
=================================

What:  HTTP and WebSocket route handlers.

Route Inventory:
    - session.py:  /api/session/*          (company/period selection, logout)
    - company.py:  /api/company/periods, /api/company/credit-count,
                   WS /api/company/credit-count/ws
    - reports.py:  /api/reports/*          (vendor list reports)
    - health.py:   GET /health

Routes stay thin: read the caller context, call a service, save the context
back. Errors propagate to the global handlers in main.py.
"""
