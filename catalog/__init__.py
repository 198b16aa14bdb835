"""
Catalog package for the Book Review service.

This package contains:
- MongoDB connection and index management
- User signup/login and bearer token handling
- Book listing, search and ownership-checked mutations
- Review creation and ownership-checked mutations
"""

__version__ = "1.0.0"
