"""Application state: the signed-in session and the operations that need it."""
import asyncio
import dataclasses
from typing import List, Optional
import logging

from readers.errors import AuthError, StoreError
from readers.events import EventBus, SessionChanged
from readers.favorites import FavoritesCache
from readers.models import Review, User, UserFavorite
from readers.profile_images import ProfileImageCache
from readers.storage import LocalStore

logger = logging.getLogger(__name__)

SESSION_KEY = "session"


class AppState:
    """Container passed to every consumer instead of a global session object.

    Blocking store calls run in worker threads; their results are applied
    back on the event loop. Each change of signed-in user publishes one
    ``SessionChanged`` event on ``bus``.
    """

    def __init__(
        self,
        store,
        favorites: FavoritesCache,
        bus: Optional[EventBus] = None,
        storage: Optional[LocalStore] = None,
        profile_images: Optional[ProfileImageCache] = None
    ):
        """
        Args:
            store: RemoteStore
            favorites: Local favorites cache (subscribed to session changes)
            bus: Event bus; a new one is created when omitted
            storage: Where the signed-in user id is remembered between runs
            profile_images: Local cache for profile pictures
        """
        self.store = store
        self.favorites = favorites
        self.bus = bus or EventBus()
        self.storage = storage
        self.profile_images = profile_images
        self.current_user: Optional[User] = None

        self.favorites.attach(self.bus)

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    def _set_user(self, user: Optional[User]):
        previous_id = self.current_user.id if self.current_user else None
        self.current_user = user
        new_id = user.id if user else None

        if self.storage is not None:
            try:
                if new_id:
                    self.storage.set(SESSION_KEY, {"user_id": new_id})
                else:
                    self.storage.delete(SESSION_KEY)
            except OSError as e:
                logger.warning(f"Could not persist session: {e}")

        if previous_id != new_id:
            logger.info(f"Session changed: {previous_id} -> {new_id}")
            self.bus.publish(SessionChanged(user))

    async def _on_auth_state_changed(self, user_id: Optional[str]) -> Optional[User]:
        """Load the user record for an authenticated id.

        A failed or empty fetch leaves the session signed out.
        """
        if user_id is None:
            self._set_user(None)
            return None

        try:
            user = await asyncio.to_thread(self.store.get_user, user_id)
        except StoreError as e:
            logger.error(f"Error fetching user data for {user_id}: {e}")
            user = None

        if user is None:
            logger.warning(f"No user record for {user_id}; staying signed out")
        self._set_user(user)
        return user

    async def restore_session(self) -> Optional[User]:
        """Resume the session remembered in local storage, if any."""
        if self.storage is None:
            return None
        saved = self.storage.get(SESSION_KEY)
        if not isinstance(saved, dict) or not saved.get("user_id"):
            return None
        return await self._on_auth_state_changed(saved["user_id"])

    async def sign_up(self, email: str, password: str, display_name: str) -> User:
        """
        Create an account and sign in as it.

        Raises:
            AuthError: If the email is taken
            StoreError: On database failure
        """
        user = await asyncio.to_thread(self.store.create_account, email, password, display_name)
        self._set_user(user)
        return user

    async def sign_in(self, email: str, password: str) -> Optional[User]:
        """
        Check credentials and load the user record.

        Returns:
            The signed-in user, or None when the record could not be loaded

        Raises:
            AuthError: On bad credentials
        """
        user_id = await asyncio.to_thread(self.store.verify_credentials, email, password)
        return await self._on_auth_state_changed(user_id)

    def sign_out(self) -> None:
        # Local favorites stay in place
        self._set_user(None)

    def _require_user(self) -> User:
        if self.current_user is None:
            raise AuthError("Not signed in")
        return self.current_user

    async def update_profile(
        self,
        display_name: str,
        bio: Optional[str] = None,
        profile_image_url: Optional[str] = None
    ) -> User:
        user = self._require_user()
        updated = dataclasses.replace(
            user,
            display_name=display_name,
            bio=bio,
            profile_image_url=profile_image_url or user.profile_image_url,
        )
        await asyncio.to_thread(self.store.save_user, updated)
        self.current_user = updated
        return updated

    async def update_profile_image(self, image_data: bytes) -> User:
        """Cache the picture locally and point the user record at it."""
        user = self._require_user()
        if self.profile_images is None:
            raise RuntimeError("No profile image cache configured")
        path = self.profile_images.save(user.id, image_data)
        return await self.update_profile(
            user.display_name, user.bio, ProfileImageCache.local_url(path)
        )

    async def submit_review(self, book_id: str, rating: int, review_text: str) -> Review:
        """
        Save the current user's review of a book, replacing any earlier one.

        Raises:
            AuthError: If signed out
            ValueError: If the review text is blank
        """
        user = self._require_user()
        review = Review(user_id=user.id, book_id=book_id, rating=rating, review_text=review_text.strip())
        if not review.is_valid_review:
            raise ValueError("Review text must not be empty")
        await asyncio.to_thread(self.store.save_review, review)
        return review

    async def book_reviews(self, book_id: str) -> List[Review]:
        return await asyncio.to_thread(self.store.get_book_reviews, book_id)

    async def my_reviews(self) -> List[Review]:
        user = self._require_user()
        return await asyncio.to_thread(self.store.get_user_reviews, user.id)

    async def load_remote_favorites(self) -> List[UserFavorite]:
        """Favorites mirrored to the remote store for the current user."""
        user = self._require_user()
        return await asyncio.to_thread(self.store.get_user_favorites, user.id)

    async def aclose(self) -> Optional[dict]:
        """
        Finish pending favorite mirrors and stop the sync worker.

        Must run before the store is closed.

        Returns:
            Final sync queue status, or None without a queue
        """
        queue = self.favorites.sync_queue
        if queue is None:
            return None
        await queue.drain()
        await queue.close()
        status = queue.status()
        if status["failed"]:
            logger.warning(f"{status['failed']} favorites failed to sync: {status['last_error']}")
        return status
