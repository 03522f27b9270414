from .mapping import (
    PersonaValidationError,
    SearchQueryData,
    persona_from_cai,
    persona_from_chub,
    search_data_from_cai,
    search_data_from_chub,
)

__all__ = [
    "PersonaValidationError",
    "SearchQueryData",
    "persona_from_cai",
    "persona_from_chub",
    "search_data_from_cai",
    "search_data_from_chub",
]
