"""
Catalog package: storage and business rules for books, authors and categories.

This package contains:
- MongoDB access layer with transactions and reference expansion
- Book/author/category relationship maintenance
- Author, category and book services
- Cover image storage
- Reference integrity audit and repair
"""

__version__ = "1.0.0"
