from dietitian.models.consent import (
    CATEGORIES,
    OPTIONAL_CATEGORIES,
    ConsentCategories,
    ConsentPreferences,
    ConsentRecord,
    ConsentSource,
)
from dietitian.models.geo import GeoClassification

__all__ = [
    "CATEGORIES",
    "OPTIONAL_CATEGORIES",
    "ConsentCategories",
    "ConsentPreferences",
    "ConsentRecord",
    "ConsentSource",
    "GeoClassification",
]
