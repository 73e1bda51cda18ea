"""
K2 Storefront Package

A demo storefront for an AI shopping agent. Serves product search (plain
relevance ranking or K2 merchant-curated scenarios) and in-memory checkout
sessions that complete after a simulated delay.
"""

__version__ = "1.0.0"
