"""Telegram admin bot relaying language-school records from Supabase.

This package provides a FastAPI application factory named ``create_app``
inside ``admin_relay/server.py`` (see :func:`create_app`).

Typical usage
-------------
from admin_relay import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --port 3000
"""

from __future__ import annotations

__all__ = ["create_app", "__version__", "get_version"]

# ---------------------------------------------------------------------
# Version handling
# ---------------------------------------------------------------------
__version__ = "0.1.0"

def get_version() -> str:
    """Return the package version."""
    return __version__


def create_app(*args, **kwargs):
    """Return a configured FastAPI application.

    This forwards to :func:`admin_relay.server.create_app`; the import is
    deferred so ``import admin_relay`` does not pull in FastAPI.
    """
    from .server import create_app as _create_app

    return _create_app(*args, **kwargs)
