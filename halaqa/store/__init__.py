from halaqa.store.base import Append, Increment, Store, TransactionPlan, get_store

__all__ = ["Append", "Increment", "Store", "TransactionPlan", "get_store"]
