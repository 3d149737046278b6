"""Shared service-layer primitives: errors, base service and ports."""
