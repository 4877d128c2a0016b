# core/identity.py
import logging
from typing import Optional
from core.tracker import Dependency

logger = logging.getLogger(__name__)


class UserIdentity:
    """Reactive source for "who is logged in". None means nobody."""

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = user_id
        self._dep = Dependency()

    def user_id(self) -> Optional[str]:
        self._dep.depend()
        return self._user_id

    def login(self, user_id: str) -> None:
        self._set(user_id)
        logger.info("identity.login user=%s", user_id)

    def logout(self) -> None:
        self._set(None)
        logger.info("identity.logout")

    def _set(self, user_id: Optional[str]) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        self._dep.changed()


current_user = UserIdentity()
