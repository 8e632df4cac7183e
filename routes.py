# routes.py
from fastapi import FastAPI
from controller.context_controller import context_router
from controller.matrix_controller import matrix_router
from controller.search_controller import search_router


def register_routes(app: FastAPI) -> None:
    """Register & Access control controllers here."""
    app.include_router(matrix_router)
    app.include_router(search_router)
    app.include_router(context_router)
