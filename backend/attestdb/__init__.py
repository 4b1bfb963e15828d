# backend/attestdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in attestdb/apps/*/models.py.
"""

from .apps.audit import models as audit_models              # append-only audit trail
from .apps.training import models as training_models        # sessions + modules
from .apps.evidence import models as evidence_models        # immutable evidence records
from .apps.compliance import models as compliance_models    # upload ledger

__all__ = [
    "audit_models",
    "training_models",
    "evidence_models",
    "compliance_models",
]
