"""Core (UI-agnostic) survey dashboard logic.

This package contains:
- the filter registry and segment presets
- filter state helpers and the WHERE-clause compiler
- SQL templates and the schema-prefix rewriter
- the URL fragment codec and restoration state machine
- the DuckDB engine service and the dashboard controller
- chart helpers (Altair -> Vega-Lite spec dict)
"""
