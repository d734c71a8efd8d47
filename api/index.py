"""Serverless entry point; the platform serves the ASGI ``app`` exported here."""

from fitsession.asgi import app  # noqa: F401
