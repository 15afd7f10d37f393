"""Profile page controller.

ProfileView owns everything the page shows: the view state decoded from the
path, the profile and its comments, posts, follows and moderates, and the
settings form. It talks to the server only through the shared channel and
leaves drawing to a ViewHost.
"""
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from . import config
from .channel import ChannelSubscription
from .data_models import (
    Comment,
    CommunityUser,
    FeedItem,
    Post,
    SortType,
    UserOperation,
    UserSettingsForm,
    UserView,
    View,
)
from .dispatcher import MessageDispatcher, RequestTracker
from .feed import feed_for_view
from .routes import POP, ViewState, from_location, to_location
from .settings import SettingsSubmitter

logger = logging.getLogger("userview.profile_view")


class ViewHost:
    """UI side effects requested by the controller. Defaults do nothing."""

    def alert(self, message: str) -> None:
        """Blocking notice for an error reported by the server."""

    def notify(self, message: str) -> None:
        """Non-blocking confirmation."""

    def set_title(self, title: str) -> None:
        pass

    def scroll_home(self) -> None:
        pass

    def push_location(self, path: str) -> None:
        pass

    def state_changed(self) -> None:
        """Called after every state mutation so the UI can redraw."""


class ProfileView:
    def __init__(
        self,
        channel,
        session,
        params: Dict[str, Optional[str]],
        host: Optional[ViewHost] = None,
        fetch_limit: int = config.FETCH_LIMIT,
        retry_delay: float = config.RETRY_DELAY,
        max_retries: int = config.MAX_RETRIES,
    ):
        self.channel = channel
        self.session = session
        self.host = host if host is not None else ViewHost()
        self.fetch_limit = fetch_limit

        self.tracker = RequestTracker()
        self.dispatcher = MessageDispatcher(self, self.tracker)
        self.settings = SettingsSubmitter(channel, session, self.tracker)
        self.subscription = ChannelSubscription(
            channel, self.dispatcher.dispatch, retry_delay=retry_delay, max_retries=max_retries
        )

        self.state: ViewState = from_location(params)
        self.reset()

    # --- lifecycle ---

    def reset(self) -> None:
        """Drop everything loaded and go back to the loading state.

        The view state (view, sort, page, user) is kept. Profile responses to
        fetches issued before the reset are discarded from here on; a pending
        settings ack is still applied.
        """
        self.user = UserView()
        self.follows: List[CommunityUser] = []
        self.moderates: List[CommunityUser] = []
        self.comments: List[Comment] = []
        self.posts: List[Post] = []
        self.loading = True
        self.settings_form = UserSettingsForm()
        self.settings_loading = False
        self.tracker.clear(UserOperation.GetUserDetails)

    def start(self) -> None:
        """Subscribe to the channel and request the first page."""
        self.subscription.start()
        self.refetch()

    def close(self) -> None:
        self.subscription.unsubscribe()

    # --- derived state ---

    @property
    def is_current_user(self) -> bool:
        return self.session.is_own_profile(self.user.id)

    @property
    def can_go_back(self) -> bool:
        return self.state.page > 1

    def feed(self) -> List[FeedItem]:
        return feed_for_view(self.state.view, self.comments, self.posts, self.state.sort)

    def page_title(self) -> str:
        title = f"/u/{self.user.name}"
        site_name = getattr(self.channel, "site_name", None)
        if site_name:
            title = f"{title} - {site_name}"
        return title

    def location(self) -> str:
        # Prefer the loaded profile's name over whatever the path held
        return to_location(replace(self.state, username=self.user.name or self.state.username))

    # --- requests ---

    def fetch_form(self) -> Dict:
        form = {
            "user_id": self.state.user_id,
            "username": self.state.username,
            "sort": self.state.sort.name,
            "saved_only": self.state.view == View.Saved,
            "page": self.state.page,
            "limit": self.fetch_limit,
        }
        if self.session.auth:
            form["auth"] = self.session.auth
        return form

    def refetch(self) -> str:
        request_id = self.tracker.issue(UserOperation.GetUserDetails)
        self.channel.post(UserOperation.GetUserDetails.value, self.fetch_form(), request_id)
        return request_id

    def _navigate(self) -> None:
        self.host.state_changed()
        self.host.push_location(self.location())
        self.refetch()

    # --- user actions ---

    def next_page(self) -> None:
        self.state.page += 1
        self._navigate()

    def prev_page(self) -> None:
        # The UI hides Prev on page 1; nothing here stops page 0
        self.state.page -= 1
        self._navigate()

    def change_view(self, view: View) -> None:
        self.state.view = view
        self.state.page = 1
        self._navigate()

    def change_sort(self, sort: SortType) -> None:
        self.state.sort = sort
        self.state.page = 1
        self._navigate()

    def set_show_nsfw(self, show_nsfw: bool) -> None:
        self.settings_form.show_nsfw = show_nsfw
        self.host.state_changed()

    def submit_settings(self) -> str:
        self.settings_loading = True
        self.host.state_changed()
        return self.settings.submit(self.settings_form)

    def on_location(self, params: Dict[str, Optional[str]], action: str) -> None:
        """Back navigation reloads from the path, not from memory."""
        if action != POP:
            return
        logger.debug("back navigation to %s", params)
        self.reset()
        self.state = from_location(params)
        self.host.state_changed()
        self.refetch()
