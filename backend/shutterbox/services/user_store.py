"""
ShutterBox Backend — User Store
=================================

What:  Signup persistence, the user aggregate reader, and the social graph
       writes (favorites, follows, avatar).
Who:   Auth, user and image routes.

Every write runs inside one atomic() scope: the users row and its three
default grants commit together or not at all, and a favorite row moves
together with the image's favorites counter.
"""

import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shutterbox.database import atomic
from shutterbox.exceptions import ConflictError, NotFoundError, ValidationError
from shutterbox.models import Image, User, UserFavorite, UserFollow
from shutterbox.schemas import user as schema
from shutterbox.schemas.common import Collection, Ref
from shutterbox.schemas.image import Image as ImageSchema
from shutterbox.services.image_store import image_store
from shutterbox.services.permission_service import permission_service
from shutterbox.services.sources import AVATAR_LOCATION, image_sources

logger = logging.getLogger(__name__)


class RemovedFiles(NamedTuple):
    shortcodes: List[str]
    avatar: Optional[str]


class UserStore:

    # ── Existence checks ──────────────────────────────────────────────────

    async def exists_username(self, db: AsyncSession, username: str) -> bool:
        result = await db.execute(select(User.id).where(User.username == username))
        return result.scalar_one_or_none() is not None

    async def exists_email(self, db: AsyncSession, email: str) -> bool:
        result = await db.execute(select(User.id).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none() is not None

    # ── Signup ────────────────────────────────────────────────────────────

    async def create_user(self, db: AsyncSession, new_user: schema.NewUser) -> int:
        """
        Insert the users row and its default grants; returns the new user id.

        The user owns itself: can_edit and can_delete go to the new id,
        can_view to everyone.

        Raises:
            ConflictError: username or email already taken (→ 409)
        """
        if await self.exists_username(db, new_user.username):
            raise ConflictError(
                message="Username is already taken",
                context={"field": "username"},
            )
        if await self.exists_email(db, new_user.email):
            raise ConflictError(
                message="Email is already registered",
                context={"field": "email"},
            )

        try:
            async with atomic(db):
                result = await db.execute(
                    insert(User)
                    .values(
                        username=new_user.username,
                        email=new_user.email,
                        password=new_user.password,
                        salt=new_user.salt,
                        name=new_user.name,
                        bio=new_user.bio,
                    )
                    .returning(User.id)
                )
                user_id = result.scalar_one()
                await permission_service.grant_defaults(db, user_id, user_id, "user")
        except SQLAlchemyError as e:
            logger.error("create_user failed for username=%s: %s", new_user.username, e)
            raise

        logger.info("User %s created with id=%d", new_user.username, user_id)
        return user_id

    # ── Readers ───────────────────────────────────────────────────────────

    async def get_user(self, db: AsyncSession, user_id: int) -> schema.User:
        """
        Full user aggregate: profile, owned images and favorites.

        Raises:
            NotFoundError: no user with that id (→ 404)
        """
        result = await db.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))

        return schema.User(
            id=row.id,
            username=row.username,
            email=row.email,
            name=row.name,
            bio=row.bio,
            avatar=image_sources(row.avatar, AVATAR_LOCATION) if row.avatar else None,
            created_at=row.created_at,
            images=await self.get_user_images(db, user_id),
            favorites=await self.get_user_favorites(db, user_id),
        )

    async def get_users(self, db: AsyncSession, user_ids: Sequence[int]) -> List[schema.User]:
        """Ordered; the first failing id aborts the whole call."""
        users = []
        for user_id in user_ids:
            users.append(await self.get_user(db, user_id))
        return users

    async def get_user_images(self, db: AsyncSession, user_id: int) -> List[ImageSchema]:
        result = await db.execute(
            select(Image.id)
            .where(Image.owner_id == user_id)
            .order_by(Image.publish_time.desc(), Image.id.desc())
        )
        return await image_store.get_images(db, list(result.scalars().all()))

    async def get_user_favorites(self, db: AsyncSession, user_id: int) -> List[ImageSchema]:
        """Favorited images, newest publish_time first."""
        result = await db.execute(
            select(Image.id)
            .join(UserFavorite, UserFavorite.image_id == Image.id)
            .where(UserFavorite.user_id == user_id)
            .order_by(Image.publish_time.desc(), Image.id.desc())
        )
        return await image_store.get_images(db, list(result.scalars().all()))

    async def get_user_followed(self, db: AsyncSession, user_id: int) -> List[schema.User]:
        result = await db.execute(
            select(UserFollow.followed_id)
            .where(UserFollow.user_id == user_id)
            .order_by(UserFollow.followed_id)
        )
        return await self.get_users(db, list(result.scalars().all()))

    async def get_user_id(self, db: AsyncSession, username: str) -> int:
        result = await db.execute(select(User.id).where(User.username == username))
        user_id = result.scalar_one_or_none()
        if user_id is None:
            raise NotFoundError(resource="user", resource_id=username)
        return user_id

    async def get_user_ref(self, db: AsyncSession, username: str) -> Ref:
        return Ref(collection=Collection.users, id=await self.get_user_id(db, username))

    async def get_credentials(self, db: AsyncSession, username: str) -> Tuple[int, str, str]:
        """(id, password hash, salt) for login; NotFoundError when unknown."""
        result = await db.execute(
            select(User.id, User.password, User.salt).where(User.username == username)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError(resource="user", resource_id=username)
        return row.id, row.password, row.salt

    # ── Social graph ──────────────────────────────────────────────────────

    async def favorite_image(self, db: AsyncSession, user_id: int, image_id: int) -> None:
        existing = await db.execute(
            select(UserFavorite.user_id).where(
                UserFavorite.user_id == user_id, UserFavorite.image_id == image_id
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(message="Image is already a favorite")

        async with atomic(db):
            await db.execute(insert(UserFavorite).values(user_id=user_id, image_id=image_id))
            await db.execute(
                update(Image)
                .where(Image.id == image_id)
                .values(favorites=Image.favorites + 1)
            )
        logger.info("User %s favorited image %s", user_id, image_id)

    async def unfavorite_image(self, db: AsyncSession, user_id: int, image_id: int) -> None:
        async with atomic(db):
            result = await db.execute(
                delete(UserFavorite).where(
                    UserFavorite.user_id == user_id, UserFavorite.image_id == image_id
                )
            )
            if result.rowcount == 0:
                raise NotFoundError(resource="favorite", resource_id=str(image_id))
            await db.execute(
                update(Image)
                .where(Image.id == image_id, Image.favorites > 0)
                .values(favorites=Image.favorites - 1)
            )
        logger.info("User %s unfavorited image %s", user_id, image_id)

    async def follow_user(self, db: AsyncSession, user_id: int, followed_id: int) -> None:
        if user_id == followed_id:
            raise ValidationError(message="Users cannot follow themselves", field="username")
        existing = await db.execute(
            select(UserFollow.user_id).where(
                UserFollow.user_id == user_id, UserFollow.followed_id == followed_id
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(message="Already following this user")

        async with atomic(db):
            await db.execute(insert(UserFollow).values(user_id=user_id, followed_id=followed_id))
        logger.info("User %s now follows %s", user_id, followed_id)

    async def unfollow_user(self, db: AsyncSession, user_id: int, followed_id: int) -> None:
        async with atomic(db):
            result = await db.execute(
                delete(UserFollow).where(
                    UserFollow.user_id == user_id, UserFollow.followed_id == followed_id
                )
            )
            if result.rowcount == 0:
                raise NotFoundError(resource="follow", resource_id=str(followed_id))
        logger.info("User %s unfollowed %s", user_id, followed_id)

    async def set_avatar(self, db: AsyncSession, user_id: int, avatar_key: str) -> None:
        async with atomic(db):
            await db.execute(update(User).where(User.id == user_id).values(avatar=avatar_key))

    async def delete_user(self, db: AsyncSession, user_id: int) -> RemovedFiles:
        """
        Deletes the user, their images, their social edges and all grants.

        Returns the storage keys that no longer have a row: the owned images'
        shortcodes and the avatar key. The caller removes those files.
        """
        row = (
            await db.execute(select(User.id, User.avatar).where(User.id == user_id))
        ).one_or_none()
        if row is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))

        owned = await db.execute(select(Image.id, Image.shortcode).where(Image.owner_id == user_id))
        images = list(owned.all())

        try:
            async with atomic(db):
                for image_id, _ in images:
                    await image_store._delete_image_rows(db, image_id)
                await db.execute(delete(UserFavorite).where(UserFavorite.user_id == user_id))
                await db.execute(
                    delete(UserFollow).where(
                        (UserFollow.user_id == user_id) | (UserFollow.followed_id == user_id)
                    )
                )
                await db.execute(delete(User).where(User.id == user_id))
                await permission_service.revoke_all(db, user_id, "user")
        except SQLAlchemyError as e:
            logger.error("delete_user failed for id=%s: %s", user_id, e)
            raise
        logger.info("User %s deleted along with %d images", user_id, len(images))
        return RemovedFiles(shortcodes=[shortcode for _, shortcode in images], avatar=row.avatar)


user_store = UserStore()
