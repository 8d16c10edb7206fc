"""BSI telemetry dashboard backend.

Serves node/base station samples from ``node_status_table`` with per-user
visibility, configurable metric mappings, and generated reports.
"""
