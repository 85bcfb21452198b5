import locale
from typing import Iterable

from .models import Photo, QueryState, SortField, SortOrder


def matches(photo: Photo, search_text: str) -> bool:
    if not search_text:
        return True
    needle = search_text.casefold()
    if needle in photo.title.casefold():
        return True
    return photo.description is not None and needle in photo.description.casefold()


def _title_key(photo: Photo) -> str:
    return locale.strxfrm(photo.title.casefold())


def sort_photos(items: Iterable[Photo], sort_field: SortField, sort_order: SortOrder) -> list[Photo]:
    # sorted() is stable, and reverse=True keeps equal keys in input order.
    key = (lambda photo: photo.id) if sort_field == SortField.ID else _title_key
    return sorted(items, key=key, reverse=sort_order == SortOrder.DESC)


def project(items: Iterable[Photo], query: QueryState) -> tuple[Photo, ...]:
    filtered = [photo for photo in items if matches(photo, query.search_text)]
    return tuple(sort_photos(filtered, query.sort_field, query.sort_order))
