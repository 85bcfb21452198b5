from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SortField(str, Enum):
    ID = "id"
    TITLE = "title"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortOption(str, Enum):
    ID_ASC = "id_asc"
    ID_DESC = "id_desc"
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"

    @property
    def sort_field(self) -> SortField:
        return SortField.ID if self in (SortOption.ID_ASC, SortOption.ID_DESC) else SortField.TITLE

    @property
    def sort_order(self) -> SortOrder:
        return SortOrder.ASC if self in (SortOption.ID_ASC, SortOption.TITLE_ASC) else SortOrder.DESC

    @property
    def label(self) -> str:
        return SORT_OPTION_LABELS[self]

    @classmethod
    def from_parts(cls, sort_field: SortField | str, sort_order: SortOrder | str) -> "SortOption":
        return cls(f"{SortField(sort_field).value}_{SortOrder(sort_order).value}")


SORT_OPTION_LABELS: dict[SortOption, str] = {
    SortOption.ID_ASC: "ID ↑",
    SortOption.ID_DESC: "ID ↓",
    SortOption.TITLE_ASC: "Title A-Z",
    SortOption.TITLE_DESC: "Title Z-A",
}


class QueryMode(str, Enum):
    """Which side owns search and sort.

    CLIENT fetches the unfiltered collection in a neutral order and filters and
    sorts the cached superset locally. SERVER sends the query to the remote
    endpoint and displays its results as returned.
    """

    CLIENT = "client"
    SERVER = "server"


class CoordinatorState(str, Enum):
    IDLE = "idle"
    LOADING_FIRST_PAGE = "loading_first_page"
    READY = "ready"
    LOADING_NEXT_PAGE = "loading_next_page"


@dataclass(frozen=True)
class Photo:
    id: int
    title: str
    url: str
    description: str | None = None
    file_size: int | None = None
    height: int | None = None
    width: int | None = None

    @property
    def aspect_ratio(self) -> float | None:
        if self.width and self.height and self.width > 0 and self.height > 0:
            return self.width / self.height
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "file_size": self.file_size,
            "height": self.height,
            "width": self.width,
        }


@dataclass(frozen=True)
class Page:
    photos: tuple[Photo, ...]
    total_pages: int = 1
    count: int | None = None
    message: str = ""

    def __post_init__(self) -> None:
        # Remote payloads report 0 pages for an empty collection.
        if self.total_pages < 1:
            object.__setattr__(self, "total_pages", 1)


@dataclass(frozen=True)
class QueryState:
    search_text: str = ""
    sort_field: SortField = SortField.ID
    sort_order: SortOrder = SortOrder.DESC

    @property
    def sort_option(self) -> SortOption:
        return SortOption.from_parts(self.sort_field, self.sort_order)


@dataclass(frozen=True)
class ViewState:
    is_loading_first_page: bool = False
    is_loading_next_page: bool = False
    error_message: str | None = None
    displayed_items: tuple[Photo, ...] = field(default_factory=tuple)
    phase: CoordinatorState = CoordinatorState.IDLE
    current_page: int = 1
    total_pages: int = 1
    cached_count: int = 0
    search_text: str = ""
    sort_option: SortOption = SortOption.ID_DESC
    is_empty_result: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "is_loading_first_page": self.is_loading_first_page,
            "is_loading_next_page": self.is_loading_next_page,
            "error_message": self.error_message,
            "is_empty_result": self.is_empty_result,
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "cached_count": self.cached_count,
            "search_text": self.search_text,
            "sort": self.sort_option.value,
            "items": [photo.to_dict() for photo in self.displayed_items],
        }
