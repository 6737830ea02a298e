from range_vault.core.adapters.BaseAdapter import BaseAdapter
from range_vault.core.adapters.decorators import status_tuple

__all__ = [
    "BaseAdapter",
    "status_tuple",
]
