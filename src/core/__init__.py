"""
Core library shared by credential refresh components.

Packages:
    errors   - Error taxonomy and classification
    logging  - Logging setup, context, formatters, audit trail
    security - Owner-only secret file materialization
"""
