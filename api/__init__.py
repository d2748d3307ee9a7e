"""
FastAPI RESTful API for the Books Management System.

This package exposes:
- Author, category and book CRUD under ``/api``
- Cover image upload and static serving under ``/uploads``
- A uniform ``{success, data, count, message, error}`` response envelope
"""
