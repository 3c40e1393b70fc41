"""Account registration, login and API key lookup."""

import sqlite3
from typing import Optional, Tuple

from common.logging_config import get_logger
from controller.auth import generate_api_key, hash_password, verify_password
from controller.exceptions import InvalidCredentialsError, UserAlreadyExistsError
from controller.repositories.user_repository import User, UserRepository
from controller.utils import generate_uuid, utc_now

logger = get_logger(__name__)


class AuthService:
    """
    Owns the users table on behalf of the HTTP layer.

    Every successful login rotates the user's API key, so at most one key per
    user is valid at any time.
    """

    def __init__(self):
        self.user_repo = UserRepository()

    def register_user(self, username: str, password: str) -> Tuple[str, str]:
        """
        Create an account and issue its first API key.

        Returns:
            (api_key, user_id)

        Raises:
            UserAlreadyExistsError: If the username is taken
        """
        if self.user_repo.get_by_username(username) is not None:
            logger.warning(f"Registration rejected, username '{username}' is taken")
            raise UserAlreadyExistsError(f"Username '{username}' already exists")

        user_id = generate_uuid()
        api_key = generate_api_key()

        try:
            self.user_repo.create_user(
                user_id=user_id,
                username=username,
                password_hash=hash_password(password),
                api_key=api_key,
                created_at=utc_now(),
            )
        except sqlite3.IntegrityError as e:
            # Lost a race against a concurrent registration of the same name.
            raise UserAlreadyExistsError(f"Username '{username}' already exists") from e

        logger.info(f"Registered user '{username}' [user_id={user_id}]")
        return api_key, user_id

    def login_user(self, username: str, password: str) -> str:
        """
        Check credentials and rotate the API key.

        Raises:
            InvalidCredentialsError: Unknown username or wrong password
        """
        user = self._authenticate(username, password)

        api_key = generate_api_key()
        self.user_repo.update_api_key(user.user_id, api_key, utc_now())
        logger.info(f"User '{username}' logged in [user_id={user.user_id}]")
        return api_key

    def validate_api_key(self, api_key: str) -> Optional[str]:
        """Return the owning user_id, or None for an unknown key."""
        user = self.user_repo.get_by_api_key(api_key)
        if user is None:
            logger.debug("Rejected unknown API key")
            return None
        return user.user_id

    def _authenticate(self, username: str, password: str) -> User:
        user = self.user_repo.get_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for username '{username}'")
            raise InvalidCredentialsError("Invalid username or password")
        return user
