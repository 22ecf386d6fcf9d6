"""
Application package for the layered art studio.

The package exposes a `create_app` factory (see `estratos.main`) that is used
by `web_app.py` and `start_webapp.py`. It is imported on first access so the
CLI can use `estratos.logging_config` without building the web app.
"""

__all__ = ["create_app"]


def __getattr__(name):
    if name == "create_app":
        from .main import create_app

        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
