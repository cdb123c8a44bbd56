"""
MongoDB persistence layer for the book review catalog.

- Connection and index management (users, books, reviews)
- Stored document models
"""
