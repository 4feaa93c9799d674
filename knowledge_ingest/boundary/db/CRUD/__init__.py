"""
CRUD operations package.

Exports:
  - BaseCRUD: Generic CRUD base class
  - DocumentCRUD, document_crud: Knowledge document repository
  - violated_constraint: Map IntegrityError to the unique column involved
"""

from knowledge_ingest.boundary.db.CRUD.base_crud import BaseCRUD
from knowledge_ingest.boundary.db.CRUD.document_crud import (
    DocumentCRUD,
    document_crud,
    violated_constraint,
)

__all__ = ["BaseCRUD", "DocumentCRUD", "document_crud", "violated_constraint"]
