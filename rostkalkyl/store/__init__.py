from .catalog_files import CatalogFileError, read_catalog_file
from .catalog_store import Catalog, CatalogRow, CatalogStore, CatalogTask

__all__ = [
    "Catalog",
    "CatalogFileError",
    "CatalogRow",
    "CatalogStore",
    "CatalogTask",
    "read_catalog_file",
]
