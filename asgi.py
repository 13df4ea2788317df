"""
asgi.py -- ASGI entry point for SessionAuth.

Run with:  uvicorn asgi:app --reload
           sessionauth  (console script, binds 0.0.0.0:8000)
"""

import uvicorn

from api.main import app

__all__ = ["app", "main"]


def main() -> None:
    uvicorn.run("asgi:app", host="0.0.0.0", port=8000)  # nosec B104 -- container entry point
