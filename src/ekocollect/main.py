"""FastAPI application entry point."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import health, pickups, routes, tokens
from .config import settings
from .db.supabase import supabase_configured

ROUTERS = (health.router, routes.router, tokens.router, pickups.router)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Collection route optimisation and EkoToken rewards for plastic collectors.",
    )
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "ledger_backend": "supabase" if supabase_configured() else "memory",
            "max_route_waypoints": settings.max_route_waypoints,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    for router in ROUTERS:
        app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
