"""Profile route codec and navigation history.

The profile page keeps its view, sort and page in the navigation path:

    /u/{username}/view/{view}/sort/{sort}/page/{page}
    /user/{id}/view/{view}/sort/{sort}/page/{page}

Every segment after the user is optional. Keywords are the lowercase enum
member names; anything unrecognized decodes to a default instead of failing.
"""
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .data_models import SortType, View
from .errors import RouteError

logger = logging.getLogger("userview.routes")

VIEW_KEYWORDS: Dict[View, str] = {
    View.Overview: "overview",
    View.Comments: "comments",
    View.Posts: "posts",
    View.Saved: "saved",
}
KEYWORD_VIEWS: Dict[str, View] = {v: k for k, v in VIEW_KEYWORDS.items()}

SORT_KEYWORDS: Dict[SortType, str] = {
    SortType.New: "new",
    SortType.TopDay: "topday",
    SortType.TopWeek: "topweek",
    SortType.TopMonth: "topmonth",
    SortType.TopYear: "topyear",
    SortType.TopAll: "topall",
}
KEYWORD_SORTS: Dict[str, SortType] = {v: k for k, v in SORT_KEYWORDS.items()}

DEFAULT_VIEW = View.Overview
DEFAULT_SORT = SortType.New

PUSH = "PUSH"
POP = "POP"

_PROFILE_ROUTE = re.compile(
    r"^/(?:u/(?P<username>[^/]+)|user/(?P<id>\d+))"
    r"(?:/view/(?P<view>[^/]+))?"
    r"(?:/sort/(?P<sort>[^/]+))?"
    r"(?:/page/(?P<page>[^/]+))?/?$"
)


@dataclass
class ViewState:
    view: View = DEFAULT_VIEW
    sort: SortType = DEFAULT_SORT
    page: int = 1
    user_id: Optional[int] = None
    username: Optional[str] = None


def view_from_keyword(keyword: Optional[str]) -> View:
    if not keyword:
        return DEFAULT_VIEW
    return KEYWORD_VIEWS.get(keyword.lower(), DEFAULT_VIEW)


def sort_from_keyword(keyword: Optional[str]) -> SortType:
    if not keyword:
        return DEFAULT_SORT
    return KEYWORD_SORTS.get(keyword.lower(), DEFAULT_SORT)


def page_from_param(value) -> int:
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return page if page >= 1 else 1


def from_location(params: Dict[str, Optional[str]]) -> ViewState:
    """Derive the initial view state from router match params."""
    user_id = params.get("id")
    return ViewState(
        view=view_from_keyword(params.get("view")),
        sort=sort_from_keyword(params.get("sort")),
        page=page_from_param(params.get("page")),
        user_id=int(user_id) if user_id is not None else None,
        username=params.get("username"),
    )


def to_location(state: ViewState) -> str:
    """Encode a view state as a profile path (inverse of from_location)."""
    if state.username:
        base = f"/u/{state.username}"
    elif state.user_id is not None:
        base = f"/user/{state.user_id}"
    else:
        raise RouteError("view state has neither a username nor a user id")
    return (
        f"{base}/view/{VIEW_KEYWORDS[state.view]}"
        f"/sort/{SORT_KEYWORDS[state.sort]}/page/{state.page}"
    )


def parse_path(path: str) -> Dict[str, Optional[str]]:
    """Match a path against the profile route and return its params."""
    match = _PROFILE_ROUTE.match(path)
    if match is None:
        raise RouteError(f"not a profile path: {path!r}")
    return match.groupdict()


class History:
    """In-memory navigation stack standing in for the browser history."""

    def __init__(self, initial: str):
        self._entries: List[str] = [initial]
        self._listeners: List[Callable[[Dict[str, Optional[str]], str], None]] = []

    @property
    def location(self) -> str:
        return self._entries[-1]

    @property
    def can_go_back(self) -> bool:
        return len(self._entries) > 1

    def listen(self, listener: Callable[[Dict[str, Optional[str]], str], None]) -> None:
        self._listeners.append(listener)

    def push(self, path: str) -> None:
        """Record a forward navigation. Listeners are not notified; the view
        that pushed already holds the new state."""
        logger.debug("history push %s", path)
        self._entries.append(path)

    def back(self) -> Optional[str]:
        if not self.can_go_back:
            return None
        self._entries.pop()
        path = self.location
        logger.debug("history pop to %s", path)
        params = parse_path(path)
        for listener in list(self._listeners):
            listener(params, POP)
        return path
