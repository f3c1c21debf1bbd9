from datetime import datetime
from typing import Any, Dict, Optional

from pymongo.errors import DuplicateKeyError

from tasky.core.exceptions import ConflictError
from tasky.models.documents import UserDocument, utc_now
from tasky.models.enums import Gender
from tasky.repositories import to_object_id

EMAIL_TAKEN = "User with this email already exists"


class UserRepository:
    """Credential store backed by the ``users`` collection."""

    async def get_by_id(self, user_id: str) -> Optional[UserDocument]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return await UserDocument.get(oid)

    async def get_by_email(self, email: str) -> Optional[UserDocument]:
        return await UserDocument.find_one(UserDocument.email == email)

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        gender: Optional[Gender] = None,
    ) -> UserDocument:
        user = UserDocument(name=name, email=email, password_hash=password_hash, gender=gender)
        try:
            await user.insert()
        except DuplicateKeyError as e:
            raise ConflictError(EMAIL_TAKEN) from e
        return user

    async def update_user(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserDocument]:
        user = await self.get_by_id(user_id)
        if user is None:
            return None
        for key, value in fields.items():
            setattr(user, key, value)
        try:
            await user.save()
        except DuplicateKeyError as e:
            raise ConflictError(EMAIL_TAKEN) from e
        return user

    async def touch_login(self, user_id: str, when: Optional[datetime] = None) -> Optional[UserDocument]:
        return await self.update_user(user_id, {"last_login_at": when or utc_now()})

    async def delete_user(self, user_id: str) -> bool:
        user = await self.get_by_id(user_id)
        if user is None:
            return False
        await user.delete()
        return True
