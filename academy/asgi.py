"""
ASGI entrypoint: expose `app` pour les process managers (ex: uvicorn/gunicorn `academy.asgi:app`).
Toute la configuration FastAPI est centralisée dans academy.app.
"""

from academy.app import app

__all__ = ["app"]
