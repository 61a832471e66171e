"""Logging setup for function handlers.

Per-request correlation lives on the FunctionContext itself; this package only
wires structlog onto stdlib logging, as JSON on serverless platforms or as
console output for local runs.
"""
