"""Exception types raised by the profile client."""


class UserViewError(Exception):
    """Base class for profile client errors"""
    pass


class ChannelError(UserViewError):
    """The shared websocket failed or closed underneath a listener"""
    pass


class RouteError(UserViewError):
    """A navigation path that is not a profile route"""
    pass


class SessionError(UserViewError):
    """A session credential that cannot be decoded"""
    pass
