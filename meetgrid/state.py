from typing import Optional

from meetgrid.access import SessionTokens
from meetgrid.stores.base import EventStore

# Global runtime state initialized in lifespan.setup_resources
event_store: Optional[EventStore] = None
session_tokens: Optional[SessionTokens] = None
