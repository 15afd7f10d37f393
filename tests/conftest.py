"""Shared fixtures: a fake channel, a recording host and payload builders."""

import asyncio

import pytest
from jose import jwt

from userview.errors import ChannelError
from userview.profile_view import ProfileView, ViewHost
from userview.session import MemoryTokenStore, UserSession


class FakeChannel:
    """Stands in for MessageChannel: records posts, serves queued messages."""

    def __init__(self, fail_times: int = 0):
        self.sent: list[dict] = []
        self.site_name = None
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.fail_times = fail_times
        self.listen_calls = 0

    def post(self, op, data, request_id=None):
        self.sent.append({"op": op, "data": data, "request_id": request_id})

    async def listen(self):
        self.listen_calls += 1
        if self.fail_times:
            self.fail_times -= 1
            raise ChannelError("transport down")
        while True:
            item = await self.inbox.get()
            if isinstance(item, ChannelError):
                raise item
            yield item

    def last(self, op: str) -> dict:
        return [m for m in self.sent if m["op"] == op][-1]


class RecordingHost(ViewHost):
    def __init__(self):
        self.alerts: list[str] = []
        self.notices: list[str] = []
        self.titles: list[str] = []
        self.locations: list[str] = []
        self.scrolls = 0
        self.changes = 0

    def alert(self, message):
        self.alerts.append(message)

    def notify(self, message):
        self.notices.append(message)

    def set_title(self, title):
        self.titles.append(title)

    def scroll_home(self):
        self.scrolls += 1

    def push_location(self, path):
        self.locations.append(path)

    def state_changed(self):
        self.changes += 1


def make_token(user_id: int = 7, username: str = "alice", show_nsfw: bool = True) -> str:
    return jwt.encode(
        {"id": user_id, "username": username, "show_nsfw": show_nsfw, "iss": "example.org"},
        "test-secret",
        algorithm="HS256",
    )


def make_comment(comment_id: int, published: str = "2020-01-01T00:00:00", score: int = 1, **extra) -> dict:
    comment = {
        "id": comment_id,
        "creator_id": 7,
        "post_id": 100 + comment_id,
        "content": f"comment {comment_id}",
        "removed": False,
        "deleted": False,
        "read": False,
        "published": published,
        "updated": None,
        "creator_name": "alice",
        "post_name": f"post {100 + comment_id}",
        "community_id": 3,
        "community_name": "main",
        "score": score,
        "upvotes": score,
        "downvotes": 0,
        "my_vote": 1,
        "saved": False,
    }
    comment.update(extra)
    return comment


def make_post(post_id: int, published: str = "2020-01-01T00:00:00", score: int = 1, **extra) -> dict:
    post = {
        "id": post_id,
        "name": f"post {post_id}",
        "url": None,
        "body": "body",
        "creator_id": 7,
        "creator_name": "alice",
        "community_id": 3,
        "community_name": "main",
        "removed": False,
        "deleted": False,
        "locked": False,
        "nsfw": False,
        "published": published,
        "updated": None,
        "number_of_comments": 0,
        "score": score,
        "upvotes": score,
        "downvotes": 0,
        "my_vote": 1,
        "saved": False,
        "hot_rank": 5,
    }
    post.update(extra)
    return post


def details_message(request_id=None, user_id=7, name="alice", comments=None, posts=None, follows=None, moderates=None) -> dict:
    message = {
        "op": "GetUserDetails",
        "user": {
            "id": user_id,
            "name": name,
            "fedi_name": f"{name}@example.org",
            "published": "2019-06-01T12:00:00",
            "number_of_posts": len(posts or []),
            "post_score": 10,
            "number_of_comments": len(comments or []),
            "comment_score": 4,
            "banned": False,
        },
        "comments": comments or [],
        "posts": posts or [],
        "follows": follows or [],
        "moderates": moderates or [],
    }
    if request_id is not None:
        message["request_id"] = request_id
    return message


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def host():
    return RecordingHost()


@pytest.fixture
def session():
    return UserSession(MemoryTokenStore())


@pytest.fixture
def own_session():
    s = UserSession(MemoryTokenStore())
    s.login(make_token())
    return s


@pytest.fixture
def make_view(channel, host, session):
    """Build a ProfileView for a path's params without starting it."""
    def _make(params=None, sess=None):
        return ProfileView(
            channel,
            sess if sess is not None else session,
            params or {"username": "alice"},
            host=host,
            fetch_limit=20,
            retry_delay=0,
        )
    return _make
