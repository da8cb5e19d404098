"""
Authentication helpers for the web app.

Design goals:
- Identity is delegated to a hosted provider; the sealed session cookie is opaque here.
- Validate on every request and fail closed on any provider error.
- Cookie-based session (HttpOnly) for same-origin pages.
"""
