"""
ERP Gateway - Application Package Initializer
==============================================

What: Marks the `erp_gateway` directory as a Python package.
Who:  Imported by uvicorn (`erp_gateway.main:app`), pytest and the services layer.

Architecture Note:
    ┌─────────────────────────────────────┐
    │        Routes (HTTP / WebSocket)    │  ← session cookie, JSON in/out
    ├─────────────────────────────────────┤
    │     Web-service orchestrator        │  ← one method per vendor report
    ├──────────────┬──────────────────────┤
    │ Session      │ Credit count bus     │  ← per-caller state / live fan-out
    │ mediator     │                      │
    ├──────────────┴──────────────────────┤
    │ Request builder · Vendor client ·   │  ← vendor wire format and transport
    │ Status normalizer                   │
    ├─────────────────────────────────────┤
    │ Company registry (SQLAlchemy)       │  ← credentials and access rows
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
