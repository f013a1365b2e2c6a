from harper.storage.db import DbConnection, connect
from harper.storage.todos import TodoStore

__all__ = ["DbConnection", "TodoStore", "connect"]
