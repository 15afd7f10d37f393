"""Build and send the profile settings form."""
import logging
from typing import Any, Dict, Optional

from .data_models import UserOperation, UserSettingsForm

logger = logging.getLogger("userview.settings")


class SettingsSubmitter:
    """Seeds the settings form from the session and sends SaveUserSettings.

    The acknowledgement is handled by the dispatcher, which resets the whole
    view and hands the returned credential to the session.
    """

    def __init__(self, channel, session, tracker):
        self.channel = channel
        self.session = session
        self.tracker = tracker

    def seed(self, form: UserSettingsForm, profile_id: Optional[int]) -> bool:
        """Copy the session's preference into the form on the user's own profile."""
        if not self.session.is_own_profile(profile_id):
            return False
        form.show_nsfw = self.session.user.show_nsfw
        return True

    def build(self, form: UserSettingsForm) -> Dict[str, Any]:
        return {
            "show_nsfw": bool(form.show_nsfw),
            "auth": self.session.auth,
        }

    def submit(self, form: UserSettingsForm) -> str:
        form.auth = self.session.auth
        request_id = self.tracker.issue(UserOperation.SaveUserSettings)
        logger.debug("submitting settings show_nsfw=%s", form.show_nsfw)
        self.channel.post(UserOperation.SaveUserSettings.value, self.build(form), request_id)
        return request_id
