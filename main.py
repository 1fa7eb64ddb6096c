"""
Deployment entrypoint.
Imports the FastAPI app from server.py so uvicorn can find it as main:app
"""

from server import app, main

__all__ = ["app"]


if __name__ == "__main__":
    main()
