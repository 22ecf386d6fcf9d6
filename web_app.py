"""
Module-level entry point for the Estratos Studio web service.

ASGI servers expect a module-level `app` object, so we import the app factory
from `estratos.main` and expose it here.
"""

from estratos import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web_app:app", host="0.0.0.0", port=8000, reload=True)
