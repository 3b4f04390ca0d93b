# Schemas package init
"""
ERP Gateway - Schemas Package
==============================

    - result.py:  Ok/Err discriminated result used at service boundaries
    - vendor.py:  Vendor wire format (envelopes, response, credentials, filters)
    - session.py: Caller session state and session route contracts
    - report.py:  Company and report route contracts
    - common.py:  Errors, health, plain messages
"""
