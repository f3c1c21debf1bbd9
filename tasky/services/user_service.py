import asyncio
from typing import Any

from tasky.core.exceptions import AuthenticationError, ConflictError, NotFoundError
from tasky.core.logging import get_logger
from tasky.core.security import verify_password
from tasky.core.validation import validate_payload
from tasky.models import DeleteAccountRequest, ProfileUpdateRequest, UserResponse
from tasky.repositories.user_repository import EMAIL_TAKEN, UserRepository

logger = get_logger("services.users")


class UserService:
    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def get_profile(self, user_id: str) -> UserResponse:
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserResponse.from_user(user)

    async def update_profile(self, user_id: str, fields: Any) -> UserResponse:
        """Apply a partial profile update.

        Only name, email, gender and profile picture URL are writable; anything
        else is rejected before the store is touched.
        """
        payload = validate_payload(ProfileUpdateRequest, fields)
        changes = payload.model_dump(exclude_unset=True)

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        new_email = changes.get("email")
        if new_email and new_email != user.email:
            other = await self.user_repo.get_by_email(new_email)
            if other is not None and str(other.id) != str(user.id):
                raise ConflictError(EMAIL_TAKEN)

        if changes:
            user = await self.user_repo.update_user(user_id, changes)
            if user is None:
                raise NotFoundError("User not found")
            logger.info("profile_updated", user_id=user_id, fields=sorted(changes))
        return UserResponse.from_user(user)

    async def delete_account(self, user_id: str, password: Any) -> None:
        payload = validate_payload(DeleteAccountRequest, {"password": password})

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not await asyncio.to_thread(verify_password, payload.password, user.password_hash):
            logger.info("account_delete_rejected", user_id=user_id)
            raise AuthenticationError("Invalid password")

        # Tasks are intentionally left in place
        await self.user_repo.delete_user(user_id)
        logger.info("account_deleted", user_id=user_id)
