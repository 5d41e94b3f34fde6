# Models package init
"""
NodeBase Backend: ORM Models
=============================

Every model must be imported here so `Base.metadata` (used by Alembic and
`Database.create_all`) knows about its table.
"""

from nodebase.models.user import User

__all__ = ["User"]
