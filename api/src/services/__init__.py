"""Business logic services.

This package contains the admission calculation service, which
orchestrates persistence and address enrichment, and the ViaCEP client
it depends on.
"""
