"""Route inbound channel messages to the profile view's handlers."""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .channel import next_request_id
from .data_models import Comment, UserDetails, UserOperation

logger = logging.getLogger("userview.dispatcher")

# Operations whose requests this view sends itself
TRACKED_OPERATIONS = (UserOperation.GetUserDetails, UserOperation.SaveUserSettings)


@dataclass
class Message:
    """Decoded channel envelope: {op, error?, request_id?, ...payload}."""
    op: Optional[UserOperation]
    raw_op: Optional[str]
    error: Optional[str] = None
    request_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        raw_op = data.get("op")
        try:
            op = UserOperation(raw_op)
        except ValueError:
            op = None
        payload = {k: v for k, v in data.items() if k not in ("op", "error", "request_id")}
        return cls(
            op=op,
            raw_op=raw_op,
            error=data.get("error") or None,
            request_id=data.get("request_id"),
            payload=payload,
        )


class RequestTracker:
    """Remember the newest request id issued per operation.

    The channel answers every view on the same socket and the server echoes
    the request id it was given. A response that names a different id than
    the newest outstanding one is an answer to a superseded request (or to
    another view) and must not overwrite newer state. Responses without an id
    are accepted, since not every server echoes one.
    """

    def __init__(self):
        self._outstanding: Dict[UserOperation, str] = {}

    def issue(self, op: UserOperation) -> str:
        request_id = next_request_id()
        self._outstanding[op] = request_id
        return request_id

    def outstanding(self, op: UserOperation) -> Optional[str]:
        return self._outstanding.get(op)

    def accepts(self, message: Message) -> bool:
        if message.op not in TRACKED_OPERATIONS or message.request_id is None:
            return True
        return self._outstanding.get(message.op) == message.request_id

    def clear(self, op: Optional[UserOperation] = None) -> None:
        if op is None:
            self._outstanding.clear()
        else:
            self._outstanding.pop(op, None)


class MessageDispatcher:
    """One handler per operation, applied to a ProfileView."""

    def __init__(self, view, tracker: Optional[RequestTracker] = None):
        self.view = view
        self.tracker = tracker if tracker is not None else RequestTracker()
        self.handlers: Dict[UserOperation, Callable[[Message], None]] = {
            UserOperation.GetUserDetails: self.on_user_details,
            UserOperation.EditComment: self.on_edit_comment,
            UserOperation.CreateComment: self.on_create_comment,
            UserOperation.SaveComment: self.on_save_comment,
            UserOperation.CreateCommentLike: self.on_comment_like,
            UserOperation.SaveUserSettings: self.on_save_settings,
        }

    def dispatch(self, data: Dict[str, Any]) -> bool:
        """Apply one inbound message. Returns True if state was changed."""
        message = Message.from_dict(data)
        logger.debug("dispatch %s request_id=%s error=%s", message.raw_op, message.request_id, message.error)

        if message.error:
            self.view.host.alert(message.error)
            return False

        handler = self.handlers.get(message.op)
        if handler is None:
            logger.debug("ignoring message for operation %r", message.raw_op)
            return False

        if not self.tracker.accepts(message):
            logger.debug(
                "discarding stale %s response %s (expecting %s)",
                message.raw_op, message.request_id, self.tracker.outstanding(message.op),
            )
            return False

        try:
            handler(message)
        finally:
            self.view.host.state_changed()
        return True

    def _find_comment(self, message: Message) -> Optional[Comment]:
        incoming = message.payload.get("comment") or {}
        comment_id = incoming.get("id")
        for comment in self.view.comments:
            if comment.id == comment_id:
                return comment
        # Only the loaded page is searched; ids from other pages land here
        logger.warning("%s for comment %r not in the loaded comments, ignored", message.raw_op, comment_id)
        return None

    def on_user_details(self, message: Message) -> None:
        details = UserDetails.from_dict(message.payload)
        view = self.view
        view.user = details.user
        view.comments = details.comments
        view.follows = details.follows
        view.moderates = details.moderates
        view.posts = details.posts
        view.loading = False
        view.settings.seed(view.settings_form, view.user.id)
        view.host.set_title(view.page_title())
        view.host.scroll_home()

    def on_edit_comment(self, message: Message) -> None:
        found = self._find_comment(message)
        if found is None:
            return
        incoming = message.payload["comment"]
        found.content = incoming.get("content")
        found.updated = incoming.get("updated")
        found.removed = incoming.get("removed")
        found.deleted = incoming.get("deleted")
        found.upvotes = incoming.get("upvotes")
        found.downvotes = incoming.get("downvotes")
        found.score = incoming.get("score")

    def on_create_comment(self, message: Message) -> None:
        # TODO: insert the new reply into the loaded comments; for now the
        # ack only confirms and the reply shows up on the next fetch.
        self.view.host.notify("reply_sent")

    def on_save_comment(self, message: Message) -> None:
        found = self._find_comment(message)
        if found is None:
            return
        found.saved = message.payload["comment"].get("saved")

    def on_comment_like(self, message: Message) -> None:
        found = self._find_comment(message)
        if found is None:
            return
        incoming = message.payload["comment"]
        found.score = incoming.get("score")
        found.upvotes = incoming.get("upvotes")
        found.downvotes = incoming.get("downvotes")
        # null my_vote means "unchanged", not "cleared"
        if incoming.get("my_vote") is not None:
            found.my_vote = incoming["my_vote"]

    def on_save_settings(self, message: Message) -> None:
        view = self.view
        view.reset()
        view.settings_loading = False
        try:
            view.session.login(message.payload["jwt"])
        finally:
            # refetch even when the new credential cannot be stored
            view.refetch()
