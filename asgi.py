"""
asgi.py -- Application assembly for UserPortal.

Run with:  uvicorn asgi:app --reload

The serverless caller is a separate process with its own entry point:
           uvicorn serverless.app:app --port 7071
"""

from api.main import app

__all__ = ["app"]
