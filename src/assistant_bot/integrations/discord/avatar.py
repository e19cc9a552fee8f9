from __future__ import annotations

from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from .commands import IMAGE_SIZE_BY_CHOICE_ID, IMAGE_SIZES, MAX_IMAGE_SIZE
from .constants import DISCORD_CDN_BASE_URL
from .interactions import extract_invoking_user, extract_resolved_user
from .routing import SuppliedOption


def _default_avatar_index(user: Mapping[str, Any]) -> int:
    discriminator = str(user.get("discriminator") or "0")
    if discriminator.strip("0"):
        return int(discriminator) % 5
    # Users migrated to unique usernames have discriminator "0".
    return (int(user["id"]) >> 22) % 6


def avatar_url(user: Mapping[str, Any], size: int = MAX_IMAGE_SIZE) -> str:
    if size not in IMAGE_SIZES:
        raise ValueError(f"unsupported image size: {size}")
    avatar_hash = user.get("avatar")
    if isinstance(avatar_hash, str) and avatar_hash:
        extension = "gif" if avatar_hash.startswith("a_") else "png"
        return (
            f"{DISCORD_CDN_BASE_URL}/avatars/{user['id']}/{avatar_hash}.{extension}"
            f"?size={size}"
        )
    index = _default_avatar_index(user)
    return f"{DISCORD_CDN_BASE_URL}/embed/avatars/{index}.png?size={size}"


def attachment_filename(url: str) -> str:
    path = urlparse(url).path
    return path.rsplit("/", 1)[-1] or "avatar.png"


def resolve_avatar_user(
    interaction_payload: dict[str, Any], options: Mapping[str, SuppliedOption]
) -> Optional[dict[str, Any]]:
    """The user named by the ``user`` option, else whoever ran the command."""
    supplied = options.get("user")
    if supplied is not None and supplied.value is not None:
        return extract_resolved_user(interaction_payload, supplied.value)
    return extract_invoking_user(interaction_payload)


def resolve_avatar_size(options: Mapping[str, SuppliedOption]) -> int:
    supplied = options.get("size")
    if supplied is None or supplied.choice_id is None:
        return MAX_IMAGE_SIZE
    return IMAGE_SIZE_BY_CHOICE_ID[supplied.choice_id]


def resolve_avatar_attach(options: Mapping[str, SuppliedOption]) -> bool:
    supplied = options.get("attach")
    return bool(supplied.value) if supplied is not None else False
