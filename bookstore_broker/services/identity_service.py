"""
Identity issuer for service bindings.

Mints the username/password identity a binding's credentials carry and
revokes it when the binding is deleted.
"""

from typing import Protocol, runtime_checkable

from ..db.db_config import DatabaseManager
from ..exceptions import IdentityIssuerError
from ..repositories.user_repository import UserRepository
from ..schemas.identity_schemas import Identity
from ..utils.credential_utils import generate_password, hash_password, verify_password
from ..utils.logger import get_logger


@runtime_checkable
class IdentityIssuer(Protocol):
    """Identity backend contract consumed by the binding service."""

    def issue(self, identifier: str, access_level: str, resource_tag: str) -> Identity:
        """Mint an identity named after identifier, scoped to access_level and resource_tag."""
        ...

    def revoke(self, identifier: str) -> None:
        """Revoke the identity named after identifier; tolerates unknown identifiers."""
        ...


class UserIdentityIssuer:
    """
    IdentityIssuer backed by the users table.

    Passwords are random, returned in plaintext only from issue(), and stored
    as salted hashes.
    """

    def __init__(self, db_manager: DatabaseManager):
        """Initialize with the database manager owning the users table."""
        self.db_manager = db_manager
        self.logger = get_logger()

    def issue(self, identifier: str, access_level: str, resource_tag: str) -> Identity:
        """
        Create (or re-create) the user for identifier.

        Args:
            identifier: Username of the new identity
            access_level: Authority granting the level of access
            resource_tag: Authority naming the resource the identity may access

        Returns:
            The issued identity with its plaintext password

        Raises:
            IdentityIssuerError: If the user cannot be stored
        """
        password = generate_password()
        password_hash = hash_password(password)
        authorities = [access_level, resource_tag]

        try:
            with self.db_manager.session_scope() as session:
                UserRepository(session).save(identifier, password_hash, authorities)
        except Exception as e:
            raise IdentityIssuerError(
                f"Failed to issue identity for '{identifier}'",
                cause=e,
                identifier=identifier,
                authorities=authorities,
            ) from e

        self.logger.info(
            "Identity issued",
            extra={"identifier": identifier, "authorities": authorities},
        )
        return Identity(username=identifier, password=password, authorities=authorities)

    def revoke(self, identifier: str) -> None:
        """
        Delete the user for identifier if it exists.

        Raises:
            IdentityIssuerError: If the user cannot be deleted
        """
        try:
            with self.db_manager.session_scope() as session:
                deleted = UserRepository(session).delete_by_username(identifier)
        except Exception as e:
            raise IdentityIssuerError(
                f"Failed to revoke identity for '{identifier}'",
                cause=e,
                identifier=identifier,
            ) from e

        if deleted:
            self.logger.info("Identity revoked", extra={"identifier": identifier})
        else:
            self.logger.debug("No identity to revoke", extra={"identifier": identifier})

    def authenticate(self, username: str, password: str) -> bool:
        """Check a username/password pair against the stored identity."""
        try:
            with self.db_manager.session_scope() as session:
                user = UserRepository(session).get_by_username(username)
                password_hash = user.password_hash if user else None
        except Exception as e:
            raise IdentityIssuerError(
                f"Failed to authenticate '{username}'", cause=e, identifier=username
            ) from e

        return password_hash is not None and verify_password(password, password_hash)
