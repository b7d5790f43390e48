"""HTTP surface for the extraction pipeline."""

from mpaka.api.server import create_app, run_server

__all__ = ["create_app", "run_server"]
