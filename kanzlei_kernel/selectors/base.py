"""
Module: kanzlei_kernel.selectors.base
Responsibility: Common base for the ledger and export read models.

Selectors run SELECTs on the caller's session and hand back frozen DTOs
(``SomeDTO.from_model(row)``).  They never add, flush or commit, so a
selector may be called while a service holds a chain lock without
disturbing the service's unit of work.
"""

from sqlalchemy.orm import Session


class BaseSelector:
    def __init__(self, session: Session):
        self.session = session
