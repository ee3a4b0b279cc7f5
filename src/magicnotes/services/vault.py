"""Password gate for the private area.

The gate is an access convenience, not encryption: the password is stored
as entered and compared verbatim. It is set once and never rotated.
"""
import logging
from enum import Enum
from typing import Callable, Optional

from magicnotes.config import MIN_PASSWORD_LENGTH
from magicnotes.exceptions import ErrorCode, ValidationError, WrongPassword
from magicnotes.services.view_filter import ViewSelector
from magicnotes.storage.base import PASSWORD_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class VaultMode(str, Enum):
    """Which password prompt, if any, is pending."""

    IDLE = "idle"
    SET_PASSWORD = "set_password"
    ENTER_PASSWORD = "enter_password"


class Vault:
    """Gates the private view behind a user-chosen password.

    ``is_unlocked`` lives only as long as this object; a fresh process
    always starts locked.
    """

    def __init__(
        self,
        port: KeyValueStore,
        switch_view: Callable[[ViewSelector], None],
    ):
        """Initialize the vault.

        Args:
            port: Persistence port holding the password key.
            switch_view: Called to change the active view on unlock and lock.
        """
        self.port = port
        self._switch_view = switch_view
        self._password: Optional[str] = port.load(PASSWORD_KEY)
        self.is_unlocked = False
        self.mode = VaultMode.IDLE

    @property
    def has_password(self) -> bool:
        return bool(self._password)

    def request_access(self) -> VaultMode:
        """Start the unlock flow.

        Returns the prompt the user must answer. When already unlocked the
        private view opens directly and ``IDLE`` is returned.
        """
        if self.is_unlocked:
            self._switch_view(ViewSelector.private())
            self.mode = VaultMode.IDLE
        elif not self.has_password:
            self.mode = VaultMode.SET_PASSWORD
        else:
            self.mode = VaultMode.ENTER_PASSWORD
        return self.mode

    def cancel(self) -> None:
        """Dismiss a pending prompt without changing anything."""
        self.mode = VaultMode.IDLE

    def submit_password(self, password: str) -> None:
        """Answer the pending prompt.

        Raises:
            ValidationError: No prompt is pending, or a new password is
                shorter than the minimum length.
            WrongPassword: The password does not match; the view is unchanged.
        """
        if self.mode == VaultMode.SET_PASSWORD:
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(
                    f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
                    field="password",
                    code=ErrorCode.PASSWORD_TOO_SHORT,
                )
            self.port.save(PASSWORD_KEY, password)
            self._password = password
            logger.info("Private area password set")
        elif self.mode == VaultMode.ENTER_PASSWORD:
            if password != self._password:
                logger.info("Private area unlock rejected")
                raise WrongPassword()
        else:
            raise ValidationError(
                "No password prompt is pending; request access first",
                code=ErrorCode.VAULT_NOT_REQUESTED,
            )

        self.is_unlocked = True
        self.mode = VaultMode.IDLE
        self._switch_view(ViewSelector.private())
        logger.info("Private area unlocked")

    def lock(self) -> None:
        """Lock the private area and return to the "all" view."""
        self.is_unlocked = False
        self.mode = VaultMode.IDLE
        self._switch_view(ViewSelector.all())
        logger.info("Private area locked")
