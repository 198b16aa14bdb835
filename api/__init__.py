"""
FastAPI REST API for the Book Review service.

This module provides:
- Signup, login and profile endpoints with bearer tokens
- Book catalog browsing, search and detail pages
- Owner-only book and review mutations
"""
