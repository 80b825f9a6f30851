"""Database module for Dropdawn.

Provides engine creation, session management, transaction helpers, and ORM models.
"""

from dropdawn.db.engine import create_db_engine, get_engine
from dropdawn.db.models import Base, Conversation, Message, MessageRole
from dropdawn.db.session import get_db, transaction

__all__ = [
    "create_db_engine",
    "get_engine",
    "get_db",
    "transaction",
    "Base",
    "MessageRole",
    "Conversation",
    "Message",
]
