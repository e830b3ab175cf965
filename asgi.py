"""
asgi.py -- Application assembly for TaskGate.

The ASGI server imports this module, not api.main directly, so deployment
configuration has one stable target even if the app factory moves.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
