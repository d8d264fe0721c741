"""
Module: billing_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    hydrate receipts and cash cuts into frozen DTOs that document renderers
    consume.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(), delete(),
      commit() or flush().
    - DTO return convention: frozen dataclasses, never ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from billing_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Selectors accept a Session from the caller and perform read-only queries."""

    def __init__(self, session: Session):
        self.session = session
