from typing import Iterable

from .models import Page, Photo


class PhotoCache:
    """Photos fetched during one session, in page-arrival order."""

    def __init__(self) -> None:
        self._items: list[Photo] = []
        self._ids: set[int] = set()
        self.current_page = 1
        self.total_pages = 1

    @property
    def items(self) -> tuple[Photo, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def has_more(self) -> bool:
        return self.current_page < self.total_pages

    def replace(self, page: Page) -> None:
        self._items = []
        self._ids = set()
        self._extend(page.photos)
        self.current_page = 1
        self.total_pages = page.total_pages

    def append(self, page: Page, page_number: int) -> int:
        added = self._extend(page.photos)
        self.total_pages = page.total_pages
        self.current_page = min(page_number, self.total_pages)
        return added

    def get(self, photo_id: int) -> Photo | None:
        if photo_id not in self._ids:
            return None
        for photo in self._items:
            if photo.id == photo_id:
                return photo
        return None

    def _extend(self, photos: Iterable[Photo]) -> int:
        # A photo can show up on two pages when the remote collection shifts
        # between requests; the first copy wins.
        added = 0
        for photo in photos:
            if photo.id in self._ids:
                continue
            self._ids.add(photo.id)
            self._items.append(photo)
            added += 1
        return added
