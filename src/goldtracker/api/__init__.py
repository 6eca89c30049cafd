"""HTTP JSON API -- FastAPI application, routes and error mapping."""

from goldtracker.api.app import create_app

__all__ = ["create_app"]
