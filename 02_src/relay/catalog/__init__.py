"""Media catalog module."""

from .catalog import (
    HttpCatalogSource,
    ICatalogSource,
    MediaCatalog,
    StaticCatalogSource,
    clean_description,
)

__all__ = [
    "ICatalogSource",
    "HttpCatalogSource",
    "StaticCatalogSource",
    "MediaCatalog",
    "clean_description",
]
