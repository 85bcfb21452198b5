import logging
from typing import Any, Protocol

import httpx

from .models import Page, Photo

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://boringapi.com/api/v1/photos/"
DEFAULT_USER_AGENT = "photofeed/0.1"


class FetchFailure(Exception):
    pass


class TransportFailure(FetchFailure):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DecodingFailure(FetchFailure):
    pass


class PageFetcher(Protocol):
    def fetch(
        self,
        page: int,
        limit: int,
        search: str | None,
        sort_by: str,
        sort_order: str,
    ) -> Page:
        """Return one page or raise FetchFailure; never a partial page."""
        ...


def _optional_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodingFailure(f"photo field {key!r} must be an integer")
    return value


def _decode_photo(raw: Any) -> Photo:
    if not isinstance(raw, dict):
        raise DecodingFailure("photo entry must be an object")

    for key in ("id", "title", "url"):
        if key not in raw:
            raise DecodingFailure(f"photo is missing key {key!r}")

    photo_id = raw["id"]
    if isinstance(photo_id, bool) or not isinstance(photo_id, int):
        raise DecodingFailure("photo field 'id' must be an integer")
    if not isinstance(raw["title"], str) or not isinstance(raw["url"], str):
        raise DecodingFailure("photo fields 'title' and 'url' must be strings")

    description = raw.get("description")
    if description is not None and not isinstance(description, str):
        raise DecodingFailure("photo field 'description' must be a string")

    return Photo(
        id=photo_id,
        title=raw["title"],
        url=raw["url"],
        description=description,
        file_size=_optional_int(raw, "file_size"),
        height=_optional_int(raw, "height"),
        width=_optional_int(raw, "width"),
    )


def decode_page(payload: Any) -> Page:
    if not isinstance(payload, dict):
        raise DecodingFailure("response body must be an object")
    if payload.get("success") is False:
        raise DecodingFailure(str(payload.get("message") or "remote reported failure"))

    photos_raw = payload.get("photos")
    if not isinstance(photos_raw, list):
        raise DecodingFailure("response is missing 'photos' list")

    total_pages = payload.get("total_pages")
    if isinstance(total_pages, bool) or not isinstance(total_pages, int):
        raise DecodingFailure("response is missing integer 'total_pages'")

    count = payload.get("count")
    if count is not None and (isinstance(count, bool) or not isinstance(count, int)):
        raise DecodingFailure("response field 'count' must be an integer")

    return Page(
        photos=tuple(_decode_photo(item) for item in photos_raw),
        total_pages=total_pages,
        count=count,
        message=str(payload.get("message") or ""),
    )


class HttpPageFetcher:
    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout_s: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=timeout_s,
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch(
        self,
        page: int,
        limit: int,
        search: str | None,
        sort_by: str,
        sort_order: str,
    ) -> Page:
        params: dict[str, Any] = {
            "page": page,
            "limit": limit,
            "sort_by": sort_by,
            "sort_order": sort_order,
        }
        if search:
            params["search"] = search

        try:
            response = self._client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "fetch_transport_error",
                extra={"page": page, "error_type": type(exc).__name__, "error": str(exc)},
            )
            raise TransportFailure(str(exc)) from exc

        if not response.is_success:
            LOGGER.warning("fetch_http_status", extra={"page": page, "status": response.status_code})
            raise TransportFailure(f"HTTP {response.status_code}", status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodingFailure("response body is not valid JSON") from exc

        result = decode_page(payload)
        LOGGER.debug(
            "fetch_decoded",
            extra={"page": page, "photos": len(result.photos), "total_pages": result.total_pages},
        )
        return result
