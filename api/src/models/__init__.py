"""Data models for the FastAPI service.

This package contains Pydantic models for request/response validation,
stored admission records and paging.
"""
