"""
Registre central des routers: paiements (API v1), admin, health.
"""
from fastapi import FastAPI
from academy.payments import views as payments_views
from academy.admin.views import router as admin_router
from academy.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    app.include_router(payments_views.router)
    app.include_router(admin_router)
    app.include_router(health_router)
