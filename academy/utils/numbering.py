"""
Numérotation séquentielle lisible (ORD-2025-0042, INV-2025-0007).

Le numéro de base dérive d'un comptage (non atomique); l'unicité est garantie
par la contrainte unique en base: en cas de collision on réessaie avec un
suffixe -1, -2, ... jusqu'à MAX_ATTEMPTS.
"""
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional

from academy.errors import PersistenceError
from academy.infra.supabase_client import is_unique_violation
from academy.utils.dates import utcnow

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 25


class DuplicateRow(Exception):
    """Levée par insert_fn quand la ligne elle-même existe déjà (conflit hors numéro)."""


def base_number(prefix: str, count: int, year: Optional[int] = None) -> str:
    year = year or utcnow().year
    return f"{prefix}-{year}-{int(count) + 1:04d}"

def candidate_numbers(base: str):
    yield base
    for attempt in range(1, MAX_ATTEMPTS):
        yield f"{base}-{attempt}"

def insert_with_sequential_number(
    *,
    prefix: str,
    field: str,
    count_fn: Callable[[], int],
    insert_fn: Callable[[Dict[str, Any]], Optional[Dict[str, Any]]],
    row: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Insère `row` en lui attribuant un numéro unique dans `field`.
    - count_fn: nombre courant de lignes (base du numéro)
    - insert_fn: insertion brute; doit laisser remonter l'erreur d'unicité
    Lève PersistenceError si l'insertion échoue pour une autre raison
    ou si tous les suffixes sont pris.
    """
    base = base_number(prefix, count_fn())
    for number in candidate_numbers(base):
        try:
            created = insert_fn({**row, field: number})
        except DuplicateRow:
            raise
        except Exception as e:
            if is_unique_violation(e):
                logger.info("numbering.collision prefix=%s number=%s", prefix, number)
                continue
            logger.exception("numbering.insert failed prefix=%s number=%s", prefix, number)
            raise PersistenceError(f"Impossible d'attribuer un numéro {prefix}") from e
        if not created:
            raise PersistenceError(f"Impossible d'attribuer un numéro {prefix}")
        return created
    raise PersistenceError(f"Numéros {prefix} épuisés pour {base}")

def make_reference(prefix: str) -> str:
    """Référence opaque horodatée, ex: txn_1718000000000_a1b2c3d4."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
