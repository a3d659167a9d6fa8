from flowbot.crud.base import DefinitionStore, SessionStore
from flowbot.crud.workflow import SQLDefinitionStore, SQLSessionStore

__all__ = [
    "DefinitionStore",
    "SessionStore",
    "SQLDefinitionStore",
    "SQLSessionStore",
]
