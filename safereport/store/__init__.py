from safereport.store.base import Store
from safereport.store.memory import MemoryStore
from safereport.store.selector import StoreSelector
from safereport.store.sql import SqlStore

__all__ = ["Store", "MemoryStore", "SqlStore", "StoreSelector"]
