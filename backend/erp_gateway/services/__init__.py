# Services package init
"""
ERP Gateway - Services Layer
=============================

What:  The external session & credit proxy and its collaborators.

Service Inventory:
    - request_builder:   pure vendor envelope construction
    - vendor_client:     endpoint resolution + POST/JSON transport (httpx)
    - status_normalizer: vendor code → Ok / Err(taxonomy error)
    - session_mediator:  vendor login, company/period selection
    - credit_bus:        per-company credit count fan-out
    - web_service:       vendor operations composed from the above
    - company_registry:  company credentials and access from the database
    - session_store:     caller session contexts, keyed by cookie
"""
