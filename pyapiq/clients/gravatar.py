"""Builds Gravatar URLs and checks whether an email has an avatar."""
import hashlib
import logging
from typing import Optional

from ..core.base_client import BaseClient, query_string
from ..core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

AVATAR_URL = "https://www.gravatar.com/avatar"
PROFILE_URL = "https://www.gravatar.com"

DEFAULT_IMAGES = ("mp", "identicon", "monsterid", "wavatar", "retro", "robohash", "blank", "404")
RATINGS = ("g", "pg", "r", "x")


def email_hash(email: str) -> str:
    """Returns the MD5 hex digest Gravatar uses to identify an email."""
    return hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()


def avatar_url(
    email: str,
    size: Optional[int] = None,
    default: Optional[str] = None,
    rating: Optional[str] = None,
    force_default: bool = False,
) -> str:
    """Builds the image URL for an email address.

    Args:
        email (str): The email address.
        size (Optional[int]): Image size in pixels (1-2048).
        default (Optional[str]): Fallback image, one of `DEFAULT_IMAGES`.
        rating (Optional[str]): Maximum rating, one of `RATINGS`.
        force_default (bool): Always show the fallback image.

    Raises:
        ValueError: If an option is out of range.
    """
    if size is not None and not 1 <= size <= 2048:
        raise ValueError(f"Size must be between 1 and 2048, got {size}")
    if default is not None and default not in DEFAULT_IMAGES:
        raise ValueError(f"Unknown default image: {default}")
    if rating is not None and rating not in RATINGS:
        raise ValueError(f"Unknown rating: {rating}")

    query = query_string({"size": size, "d": default, "r": rating, "f": "y" if force_default else None})
    url = f"{AVATAR_URL}/{email_hash(email)}"
    return f"{url}?{query}" if query else url


def profile_url(email: str) -> str:
    return f"{PROFILE_URL}/{email_hash(email)}"


class GravatarClient(BaseClient):
    """Checks avatar existence. Avatars rarely change, so results keep a day."""

    name = "gravatar"
    description = "Avatar lookups against Gravatar."
    default_ttl = 86400

    async def exists(self, email: str, bypass_cache: bool = False) -> bool:
        """Returns True if `email` has a Gravatar image.

        Asking for `d=404` makes Gravatar answer 404 instead of serving a
        placeholder, so a HEAD request is enough.
        """
        try:
            await self.fetch(
                avatar_url(email, default="404"),
                bypass_cache=bypass_cache,
                fetch_options={"method": "HEAD"},
                parse_response=lambda response: True,
            )
        except NotFoundError:
            return False
        return True
