"""
FastAPI RESTful API for the book review catalog.

This package provides:
- User signup and login with JWT bearer tokens
- Book catalog creation, browsing, filtering and search
- One review per user per book, with aggregate ratings
- Ownership checks on review updates and deletes
"""
