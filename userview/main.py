from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.widgets import Static, Button, Select, Checkbox
from textual.screen import ModalScreen, Screen
from textual.css.query import NoMatches
from rich.text import Text
from typing import List, Optional
import asyncio
import logging
import sys

from . import config
from .api_interface import fetch_site_name
from .channel import MessageChannel
from .data_models import Comment, CommunityUser, FeedItem, Post, SortType, View
from .errors import RouteError
from .profile_view import ProfileView, ViewHost
from .routes import History, parse_path
from .session import KeyringTokenStore, UserSession

logger = logging.getLogger("userview.main")

# Display text for message keys sent by the server
MESSAGES = {
    "reply_sent": "Reply sent",
    "couldnt_find_that_username_or_email": "Couldn't find that username",
    "not_logged_in": "Not logged in",
    "site_ban": "You have been banned from the site",
}

VIEW_OPTIONS = [
    ("Overview", View.Overview),
    ("Comments", View.Comments),
    ("Posts", View.Posts),
    ("Saved", View.Saved),
]

SORT_OPTIONS = [
    ("New", SortType.New),
    ("Top Day", SortType.TopDay),
    ("Week", SortType.TopWeek),
    ("Month", SortType.TopMonth),
    ("Year", SortType.TopYear),
    ("All", SortType.TopAll),
]


def message_text(key: str) -> str:
    return MESSAGES.get(key, key.replace("_", " ").capitalize())


def format_date(published: Optional[str]) -> str:
    """Trim an ISO timestamp to its date."""
    return (published or "")[:10]


# ───────── Dialogs ─────────
class ErrorDialog(ModalScreen):
    """Blocking notice for errors the server reports."""

    DEFAULT_CSS = """
    ErrorDialog { align: center middle; }
    #error-box { width: 50; height: auto; border: heavy $error; padding: 1 2; }
    """

    def __init__(self, message: str):
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        with Vertical(id="error-box"):
            yield Static(self.message, id="error-message")
            yield Button("OK", id="error-ok", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss()


# ───────── Feed ─────────
class FeedItemWidget(Static):
    def __init__(self, item: FeedItem, **kwargs):
        super().__init__(**kwargs)
        self.item = item

    def render(self) -> Text:
        if self.item.kind == "posts":
            return self._render_post(self.item.data)
        return self._render_comment(self.item.data)

    def _render_post(self, post: Post) -> Text:
        text = Text()
        text.append(f"{post.score or 0:>5}  ", style="bold cyan")
        text.append(post.name or "", style="bold")
        if post.nsfw:
            text.append("  NSFW", style="red")
        if post.saved:
            text.append("  ★", style="yellow")
        text.append(
            f"\n       c/{post.community_name} · {format_date(post.published)}"
            f" · {post.number_of_comments} comments",
            style="dim",
        )
        return text

    def _render_comment(self, comment: Comment) -> Text:
        text = Text()
        text.append(f"{comment.score or 0:>5}  ", style="bold magenta")
        if comment.deleted or comment.removed:
            text.append("[deleted]" if comment.deleted else "[removed]", style="italic dim")
        else:
            text.append(comment.content or "")
        if comment.saved:
            text.append("  ★", style="yellow")
        text.append(
            f"\n       on {comment.post_name} · c/{comment.community_name}"
            f" · {format_date(comment.published)}",
            style="dim",
        )
        return text


def community_list(title: str, communities: List[CommunityUser]) -> str:
    lines = [title]
    lines.extend(f"  c/{c.community_name}" for c in communities)
    return "\n".join(lines)


# ───────── Profile Screen ─────────
class ScreenHost(ViewHost):
    """Applies ProfileView side effects to a ProfileScreen."""

    def __init__(self, screen: "ProfileScreen"):
        self.screen = screen

    def alert(self, message: str) -> None:
        self.screen.app.push_screen(ErrorDialog(message_text(message)))

    def notify(self, message: str) -> None:
        self.screen.app.notify(message_text(message), timeout=2)

    def set_title(self, title: str) -> None:
        self.screen.app.title = title

    def scroll_home(self) -> None:
        try:
            self.screen.query_one("#feed", VerticalScroll).scroll_home(animate=False)
        except NoMatches:
            # not composed yet
            pass

    def push_location(self, path: str) -> None:
        self.screen.history.push(path)
        self.screen.app.sub_title = path

    def state_changed(self) -> None:
        self.screen.call_after_refresh(self.screen.redraw)


class ProfileScreen(Screen):
    BINDINGS = [
        Binding("n", "next_page", "Next", show=True),
        Binding("p", "prev_page", "Prev", show=True),
        Binding("b", "back", "Back", show=True),
        Binding("escape", "back", "Back", show=False),
        Binding("s", "save_settings", "Save settings", show=False),
    ]

    DEFAULT_CSS = """
    #main { width: 2fr; }
    #sidebar { width: 1fr; }
    #selects { height: auto; }
    #selects Select { width: 20; }
    #paginator { height: auto; }
    .card { border: round $secondary; padding: 0 1; height: auto; }
    .feed-item { margin-bottom: 1; }
    """

    def __init__(self, channel, session, history: History, **kwargs):
        super().__init__(**kwargs)
        self.channel = channel
        self.session = session
        self.history = history
        self.profile: Optional[ProfileView] = None
        self._redraw_lock = asyncio.Lock()

    def compose(self) -> ComposeResult:
        yield Static("Loading...", id="loading")
        with Horizontal(id="profile-body"):
            with Vertical(id="main"):
                yield Static("", id="profile-title", classes="panel-header")
                with Horizontal(id="selects"):
                    yield Select(VIEW_OPTIONS, value=View.Overview, allow_blank=False, id="view-select")
                    yield Select(SORT_OPTIONS, value=SortType.New, allow_blank=False, id="sort-select")
                yield VerticalScroll(id="feed")
                with Horizontal(id="paginator"):
                    yield Button("Prev", id="prev-page")
                    yield Button("Next", id="next-page")
            with VerticalScroll(id="sidebar"):
                yield Static("", id="user-info", classes="card")
                with Container(id="settings-card", classes="card"):
                    yield Static("Settings")
                    yield Checkbox("Show NSFW", id="show-nsfw")
                    yield Button("Save", id="save-settings")
                yield Static("", id="moderates", classes="card")
                yield Static("", id="follows", classes="card")

    def on_mount(self) -> None:
        params = parse_path(self.history.location)
        self.profile = ProfileView(self.channel, self.session, params, host=ScreenHost(self))
        self.history.listen(self.profile.on_location)
        self.profile.start()
        self.call_after_refresh(self.redraw)

    def on_unmount(self) -> None:
        if self.profile is not None:
            self.profile.close()

    async def redraw(self) -> None:
        if self.profile is None:
            return
        # remove/mount awaits must not interleave between two redraws
        async with self._redraw_lock:
            await self._redraw(self.profile)

    async def _redraw(self, profile: ProfileView) -> None:
        self.query_one("#loading", Static).display = profile.loading
        self.query_one("#profile-body", Horizontal).display = not profile.loading
        if profile.loading:
            return

        user = profile.user
        self.query_one("#profile-title", Static).update(f"/u/{user.name}")

        view_select = self.query_one("#view-select", Select)
        if view_select.value != profile.state.view:
            view_select.value = profile.state.view
        sort_select = self.query_one("#sort-select", Select)
        if sort_select.value != profile.state.sort:
            sort_select.value = profile.state.sort

        feed = self.query_one("#feed", VerticalScroll)
        await feed.remove_children()
        widgets = [FeedItemWidget(item, classes="feed-item") for item in profile.feed()]
        if widgets:
            await feed.mount_all(widgets)
        else:
            await feed.mount(Static("Nothing here.", classes="feed-empty"))

        self.query_one("#prev-page", Button).display = profile.can_go_back

        banned = "  [banned]" if user.banned else ""
        self.query_one("#user-info", Static).update(
            f"{user.name}{banned}\n"
            f"Joined {format_date(user.published)}\n"
            f"{user.post_score} points · {user.number_of_posts} posts\n"
            f"{user.comment_score} points · {user.number_of_comments} comments"
        )

        settings_card = self.query_one("#settings-card", Container)
        settings_card.display = profile.is_current_user
        checkbox = self.query_one("#show-nsfw", Checkbox)
        show_nsfw = bool(profile.settings_form.show_nsfw)
        if checkbox.value != show_nsfw:
            checkbox.value = show_nsfw
        self.query_one("#save-settings", Button).label = "Saving..." if profile.settings_loading else "Save"

        moderates = self.query_one("#moderates", Static)
        moderates.display = bool(profile.moderates)
        moderates.update(community_list("Moderates", profile.moderates))
        follows = self.query_one("#follows", Static)
        follows.display = bool(profile.follows)
        follows.update(community_list("Subscribed", profile.follows))

    def on_select_changed(self, event: Select.Changed) -> None:
        if self.profile is None or self.profile.loading:
            return
        if event.select.id == "view-select" and event.value != self.profile.state.view:
            self.profile.change_view(event.value)
        elif event.select.id == "sort-select" and event.value != self.profile.state.sort:
            self.profile.change_sort(event.value)

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        if self.profile is None:
            return
        if event.value != bool(self.profile.settings_form.show_nsfw):
            self.profile.set_show_nsfw(event.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:
        btn_id = event.button.id
        if btn_id == "next-page":
            self.action_next_page()
        elif btn_id == "prev-page":
            self.action_prev_page()
        elif btn_id == "save-settings":
            self.action_save_settings()

    def action_next_page(self) -> None:
        if self.profile is not None and not self.profile.loading:
            self.profile.next_page()

    def action_prev_page(self) -> None:
        if self.profile is not None and self.profile.can_go_back:
            self.profile.prev_page()

    def action_back(self) -> None:
        self.history.back()

    def action_save_settings(self) -> None:
        if self.profile is not None and self.profile.is_current_user and not self.profile.settings_loading:
            self.profile.submit_settings()


class UserViewApp(App):
    ENABLE_COMMAND_PALETTE = False

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
    ]

    def __init__(self, channel, session, start_path: str):
        super().__init__()
        self.channel = channel
        self.session = session
        self.history = History(start_path)

    def on_mount(self) -> None:
        self.sub_title = self.history.location
        self.push_screen(ProfileScreen(self.channel, self.session, self.history))

    async def on_unmount(self) -> None:
        close = getattr(self.channel, "close", None)
        if close is not None:
            await close()

    def action_quit(self) -> None:
        self.exit()


def main():
    config.configure_logging()
    start_path = sys.argv[1] if len(sys.argv) > 1 else config.START_PATH
    if not start_path:
        print("usage: userview /u/<username>[/view/<view>/sort/<sort>/page/<n>]", file=sys.stderr)
        sys.exit(2)
    try:
        parse_path(start_path)
    except RouteError as e:
        print(f"userview: {e}", file=sys.stderr)
        sys.exit(2)

    channel = MessageChannel(config.WS_URL)
    channel.site_name = fetch_site_name(config.SITE_URL)
    session = UserSession.restore(KeyringTokenStore())
    try:
        UserViewApp(channel, session, start_path).run()
    except Exception:
        logger.exception("Exception occurred while running UserViewApp:")
        sys.exit(1)


if __name__ == "__main__":
    main()
