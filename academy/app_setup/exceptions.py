"""
Gestionnaire d’exceptions HTTP.
- Les erreurs métier (academy.errors) dérivent de HTTPException: une seule réponse JSON {"detail": ...}.
- Les 5xx sont logués avec la route concernée.
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if exc.status_code >= 500:
            logger.error("http.error status=%s path=%s detail=%s", exc.status_code, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
