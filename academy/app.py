# module academy.app
import logging
from fastapi import FastAPI

from academy.config import LOG_LEVEL
from academy.app_setup.exceptions import register_exception_handlers
from academy.app_setup.lifespan import lifespan
from academy.app_setup.middlewares import register_basic_middlewares, register_security_middleware
from academy.app_setup.routers import register_routers

def create_app() -> FastAPI:
    """
    Crée et configure l’instance FastAPI.
    Étapes et ordre:
      1) register_basic_middlewares: CORS, TrustedHost.
      2) register_security_middleware: en-têtes de sécurité + CSRF (webhooks exemptés).
      3) register_exception_handlers: erreurs métier -> JSON {"detail": ...}.
      4) register_routers: paiements, admin, health.
    """
    logging.getLogger("academy").setLevel(LOG_LEVEL)
    app = FastAPI(title="Academy Payments API", version="1.0.0", lifespan=lifespan)
    register_basic_middlewares(app)
    register_security_middleware(app)
    register_exception_handlers(app)
    register_routers(app)
    return app

# App globale
app = create_app()
