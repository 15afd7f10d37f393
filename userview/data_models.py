"""
Data models for the profile page.
These mirror the JSON shapes the server sends on the websocket channel.
"""
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class View(Enum):
    Overview = 0
    Comments = 1
    Posts = 2
    Saved = 3


class SortType(Enum):
    New = 0
    TopDay = 1
    TopWeek = 2
    TopMonth = 3
    TopYear = 4
    TopAll = 5


class UserOperation(Enum):
    """Operation tags carried in the `op` field of channel messages."""
    GetUserDetails = "GetUserDetails"
    EditComment = "EditComment"
    CreateComment = "CreateComment"
    SaveComment = "SaveComment"
    CreateCommentLike = "CreateCommentLike"
    SaveUserSettings = "SaveUserSettings"


def _known_fields(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    # Server payloads carry extra keys the page does not use
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class UserView:
    """Represents the profile being viewed."""
    id: Optional[int] = None
    name: Optional[str] = None
    fedi_name: Optional[str] = None
    published: Optional[str] = None
    number_of_posts: Optional[int] = None
    post_score: Optional[int] = None
    number_of_comments: Optional[int] = None
    comment_score: Optional[int] = None
    banned: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserView":
        return cls(**_known_fields(cls, data))


@dataclass
class Comment:
    """Represents a comment written by the profile's user."""
    id: int
    content: str = ""
    creator_id: Optional[int] = None
    post_id: Optional[int] = None
    parent_id: Optional[int] = None
    creator_name: Optional[str] = None
    post_name: Optional[str] = None
    community_id: Optional[int] = None
    community_name: Optional[str] = None
    removed: bool = False
    deleted: bool = False
    read: bool = False
    published: str = ""
    updated: Optional[str] = None
    score: int = 0
    upvotes: int = 0
    downvotes: int = 0
    my_vote: Optional[int] = None  # 1, 0, -1
    saved: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return cls(**_known_fields(cls, data))


@dataclass
class Post:
    """Represents a post submitted by the profile's user."""
    id: int
    name: str = ""
    url: Optional[str] = None
    body: Optional[str] = None
    creator_id: Optional[int] = None
    creator_name: Optional[str] = None
    community_id: Optional[int] = None
    community_name: Optional[str] = None
    removed: bool = False
    deleted: bool = False
    locked: bool = False
    nsfw: bool = False
    published: str = ""
    updated: Optional[str] = None
    number_of_comments: int = 0
    score: int = 0
    upvotes: int = 0
    downvotes: int = 0
    my_vote: Optional[int] = None
    saved: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        return cls(**_known_fields(cls, data))


@dataclass
class CommunityUser:
    """A follows or moderates link between the user and a community."""
    community_id: int
    community_name: str
    id: Optional[int] = None
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    published: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommunityUser":
        return cls(**_known_fields(cls, data))


@dataclass
class FeedItem:
    kind: str  # 'comments' or 'posts'
    data: Any


@dataclass
class UserSettingsForm:
    show_nsfw: Optional[bool] = None
    auth: Optional[str] = None


@dataclass
class UserDetails:
    """Payload of a GetUserDetails response."""
    user: UserView
    follows: List[CommunityUser] = field(default_factory=list)
    moderates: List[CommunityUser] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    posts: List[Post] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserDetails":
        return cls(
            user=UserView.from_dict(data.get("user") or {}),
            follows=[CommunityUser.from_dict(c) for c in data.get("follows") or []],
            moderates=[CommunityUser.from_dict(c) for c in data.get("moderates") or []],
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            posts=[Post.from_dict(p) for p in data.get("posts") or []],
        )
