"""
Application entry point.

Run with: uvicorn main:app --reload
"""
from docgraph.api.main import app

__all__ = ["app"]
