"""PostgreSQL repository for User entities."""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stayfleet.logging import get_logger
from stayfleet.models.user import User, UserInput
from stayfleet.security.cipher import FieldCipher
from stayfleet.storage.db_models import UserTable
from stayfleet.storage.repository_base import RepositoryBase

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "email", "role", "phone", "address"})


class PostgresUserRepository(RepositoryBase[User]):
    """User repository using PostgreSQL; phone and address are stored encrypted."""

    table = UserTable
    entity_name = "user"

    def __init__(self, session: AsyncSession, cipher: FieldCipher):
        """Initialize repository with database session and field cipher."""
        super().__init__(session)
        self.cipher = cipher

    async def get_by_email(self, email: str) -> Optional[User]:
        """Retrieve user by email address."""
        stmt = select(UserTable).where(UserTable.email == email.lower())
        result = await self.session.execute(stmt)
        db_user = result.scalar_one_or_none()

        if not db_user:
            return None

        return self._to_domain_model(db_user)

    async def create(self, entity: UserInput) -> User:
        """Create new user."""
        values = self.cipher.encrypt_fields(
            {"phone": entity.phone, "address": entity.address},
            User.ENCRYPTED_FIELDS,
        )

        db_user = UserTable(
            name=entity.name,
            email=entity.email.lower(),
            role=entity.role,
            **values,
        )

        self.session.add(db_user)
        await self.session.flush()

        logger.info("user_created", user_id=db_user.id, role=entity.role.value)

        return self._to_domain_model(db_user)

    async def update(self, entity: User, fields: Iterable[str]) -> User:
        """
        Write the named fields of an existing user.

        Phone and address are only re-encrypted when named, so stored
        ciphertext the current keys cannot read is left untouched.
        """
        fields = set(fields)
        unknown = fields - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"User fields cannot be updated: {sorted(unknown)}")

        db_user = await self._get_row(entity.id)

        if not db_user:
            raise ValueError(f"User not found: {entity.id}")

        values = self.cipher.encrypt_fields(
            {field: getattr(entity, field) for field in fields},
            [field for field in User.ENCRYPTED_FIELDS if field in fields],
        )
        if "email" in values:
            values["email"] = values["email"].lower()
        for field, value in values.items():
            setattr(db_user, field, value)
        db_user.updated_at = datetime.utcnow()

        await self.session.flush()

        logger.info("user_updated", user_id=entity.id, fields=sorted(fields))

        return self._to_domain_model(db_user)

    def _to_domain_model(self, db_user: UserTable) -> User:
        """Convert database model to domain model, decrypting personal data."""
        values = self.cipher.decrypt_fields(
            {"phone": db_user.phone, "address": db_user.address},
            User.ENCRYPTED_FIELDS,
        )

        return User(
            id=db_user.id,
            name=db_user.name,
            email=db_user.email,
            phone=values["phone"],
            address=values["address"],
            role=db_user.role,
            created_at=db_user.created_at,
            updated_at=db_user.updated_at,
        )
