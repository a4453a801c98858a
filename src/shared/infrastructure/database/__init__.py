"""
Shared Database Infrastructure
Declarative base, session management, UoW and upsert helpers
"""
from src.shared.infrastructure.database.base_model import Base, UTCDateTime
from src.shared.infrastructure.database.session import DatabaseSessionFactory
from src.shared.infrastructure.database.sqlalchemy_unit_of_work import SQLAlchemyUnitOfWork
from src.shared.infrastructure.database.upsert import insert_for

__all__ = [
    "Base",
    "UTCDateTime",
    "DatabaseSessionFactory",
    "SQLAlchemyUnitOfWork",
    "insert_for",
]
