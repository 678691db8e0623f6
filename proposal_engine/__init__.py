"""Proposal engine: pricing, payload mapping, template expansion and markup normalization."""

__version__ = "0.1.0"
