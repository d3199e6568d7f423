"""
asgi.py -- ASGI entry point for the account service.

Run with:  uvicorn asgi:app --reload

api/main.py owns the app and its routes. This module exists so deployment
config names one stable import path even if the app's assembly moves.
"""

from api.main import app

__all__ = ["app"]
