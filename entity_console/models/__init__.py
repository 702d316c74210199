from entity_console.models.base import Base
from entity_console.models.preference import Preference

__all__ = ["Base", "Preference"]
