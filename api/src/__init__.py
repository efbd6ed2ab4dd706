"""FastAPI service for admission tenure calculations.

This package provides REST API endpoints that compute tenure and salary
percentage for admission records, enrich them with ViaCEP address data
and store them in MongoDB.
"""

__version__ = "1.0.0"
