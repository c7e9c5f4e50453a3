"""Infrastructure layer."""

from pandamall.infrastructure.database import ClientStateStore, TranslationCache, get_db, init_db, open_store
from pandamall.infrastructure.database.models import ClientStateEntry
