"""Kernel utilities shared across the engine.

Rules:
- Kernel code must not import from the activity pipeline or the service layer.
- Kernel utilities should stay small and stable; avoid conversation logic here.
"""
