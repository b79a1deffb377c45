"""Telemetry for credproxy.

Structure:
    audit/    - Decision audit emitter (decisions.jsonl)
    models/   - Pydantic models for logged events
    system/   - Operational system logger (stderr + system.jsonl)
"""
