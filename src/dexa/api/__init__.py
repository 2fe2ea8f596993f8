"""HTTP API -- FastAPI app exposing balance, price and market queries."""

from dexa.api.app import create_app

__all__ = ["create_app"]
