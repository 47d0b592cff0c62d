"""Per-user profile image cache on local disk."""
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

PROFILE_IMAGES_DIR = "ProfileImages"


class ProfileImageCache:
    """Stores one image file per user at ``ProfileImages/<user_id>_profile.jpg``."""

    def __init__(self, data_dir: str):
        self.base_dir = os.path.join(data_dir, PROFILE_IMAGES_DIR)

    def path_for(self, user_id: str) -> str:
        if not user_id or os.sep in user_id or (os.altsep and os.altsep in user_id):
            raise ValueError(f"Invalid user id: {user_id!r}")
        return os.path.join(self.base_dir, f"{user_id}_profile.jpg")

    def save(self, user_id: str, image_data: bytes) -> str:
        """
        Write the image bytes for a user, replacing any previous image.

        Returns:
            Path of the cached file
        """
        os.makedirs(self.base_dir, exist_ok=True)
        path = self.path_for(user_id)
        with open(path, "wb") as f:
            f.write(image_data)
        logger.info(f"Saved profile image for {user_id} ({len(image_data)} bytes)")
        return path

    def load(self, user_id: str) -> Optional[bytes]:
        path = self.path_for(user_id)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def delete(self, user_id: str) -> None:
        path = self.path_for(user_id)
        if os.path.exists(path):
            os.unlink(path)

    @staticmethod
    def local_url(path: str) -> str:
        """Reference stored on the user record for a locally cached image."""
        return f"local://{path}"
