from typing import Optional
from supabase import create_client, Client
from academy.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

UNIQUE_VIOLATION = "23505"

def get_supabase() -> Client:
    global _supabase
    if _supabase is None:
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON)
    return _supabase

def get_service_supabase() -> Client:
    global _service_supabase
    if not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase

def is_unique_violation(exc: BaseException) -> bool:
    """
    Vrai si l'erreur PostgREST correspond à une contrainte d'unicité Postgres (23505).
    - APIError expose .code; certains chemins ne remontent que le message.
    """
    code = getattr(exc, "code", None)
    if code == UNIQUE_VIOLATION:
        return True
    msg = str(exc).lower()
    return UNIQUE_VIOLATION in msg or "duplicate key" in msg
