"""Proposal engine services (pricing, auto-fill, mapping, expansion, normalization, rendering)."""
