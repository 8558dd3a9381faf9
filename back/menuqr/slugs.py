import re
import unicodedata

from sqlmodel import Session, select

from .models import Restaurant

FALLBACK_SLUG = "restaurant"

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def derive_slug(name: str) -> str:
    """
    Derive the public menu slug from a restaurant name.

    Accented Latin letters are transliterated ("Café" -> "cafe"); anything else
    outside [a-z0-9], whitespace and "-" is dropped. May return "" for names
    without usable characters.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_name = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _DISALLOWED.sub("", ascii_name.lower())
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")


def unique_slug(session: Session, name: str, exclude_restaurant_id: int | None = None) -> str:
    """Derive a slug and suffix -2, -3, ... until no other restaurant holds it."""
    base = derive_slug(name) or FALLBACK_SLUG

    statement = select(Restaurant.slug).where(
        (Restaurant.slug == base) | Restaurant.slug.startswith(f"{base}-")
    )
    if exclude_restaurant_id is not None:
        statement = statement.where(Restaurant.id != exclude_restaurant_id)
    taken = set(session.exec(statement).all())

    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"
