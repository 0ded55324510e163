"""Reporting workflow engine components.

Provides:
- Settings loaded from .env
- Structured logging
- Local JSON persistence of execution contexts
- Clients for the source EHR, the destination and the data trust service
"""
