# routes.py
from fastapi import FastAPI
from controller.video_controller import video_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(video_router)
