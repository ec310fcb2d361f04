"""
Erreurs métier de l'application.

Toutes dérivent de fastapi.HTTPException: le handler unique de
app_setup.exceptions les rend en JSON {"detail": ...} avec le bon status.
- ValidationError (400): panier vide, coupon invalide, délai de remboursement dépassé...
- PermissionDeniedError (403): commande/facture d'un autre utilisateur
- NotFoundError (404): commande/facture introuvable
- ProviderError (502): appel Stripe/PayPal en échec
- PersistenceError (500): écriture indispensable au flux non effectuée
- PartialSideEffectError: échec partiel des effets post-paiement (jamais exposé au client)
"""
from typing import Any, Dict, List, Optional
from fastapi import HTTPException


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Requête invalide"):
        super().__init__(status_code=400, detail=detail)


class PermissionDeniedError(HTTPException):
    def __init__(self, detail: str = "Accès interdit"):
        super().__init__(status_code=403, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Ressource introuvable"):
        super().__init__(status_code=404, detail=detail)


class ProviderError(HTTPException):
    def __init__(self, detail: str = "Erreur du prestataire de paiement", provider: Optional[str] = None):
        super().__init__(status_code=502, detail=detail)
        self.provider = provider


class PersistenceError(HTTPException):
    def __init__(self, detail: str = "Erreur d'enregistrement"):
        super().__init__(status_code=500, detail=detail)


class PartialSideEffectError(Exception):
    """
    Levée quand une partie des effets post-paiement a échoué.
    - failures: [{"step": ..., "ref": ..., "error": ...}]
    - done: références traitées avec succès
    """

    def __init__(self, failures: List[Dict[str, Any]], done: Optional[List[Any]] = None):
        super().__init__(f"{len(failures)} effet(s) post-paiement en échec")
        self.failures = failures
        self.done = done or []
