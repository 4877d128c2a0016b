# main.py
import sys
from config.settings import settings
from config.store import close_store
from core.lifecycle import lifecycle
from service.persistent_session import PersistentSession
from service.session import session
from util.enums import Color
from util.logger import init_logger


def bootstrap() -> PersistentSession:
    """Start logging and run queued startup work (migrations + rehydration)."""
    init_logger()
    lifecycle.start()
    return session


if __name__ == "__main__":
    bootstrap()
    store = session if len(sys.argv) < 2 else PersistentSession(sys.argv[1])
    print(f"{Color.GREEN}{store!r} backend={settings.STORE_BACKEND.value}{Color.RESET}")
    try:
        for key, value in store.all().items():
            print(f"{Color.CYAN}{key}{Color.RESET} = {value!r}")
    finally:
        close_store()
