# service/session.py
from service.persistent_session import PersistentSession
from util.constants import DEFAULT_NAMESPACE

# The process-wide default store: created once on import, never torn down.
# Its rehydration runs when the lifecycle starts (see main.bootstrap).
session = PersistentSession(DEFAULT_NAMESPACE)
