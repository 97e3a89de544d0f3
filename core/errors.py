"""
Relay Error Taxonomy

Every failure the relay knows how to contain has its own exception type so
the component that handles it can catch exactly that and nothing else.

    BootstrapError          - no upstream endpoint/token; retried forever
    UpstreamConnectionError - socket failure or close after subscribe; reconnect
    MalformedFeedMessage    - feed frame without usable candle; dropped + logged
    HistoryFetchError       - history REST call failed; sent to requester only
    SubscriberSendFailure   - one downstream subscriber can't take a message
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all errors raised by the relay."""


class BootstrapError(RelayError):
    """The bootstrap REST call did not yield a usable endpoint and token."""


class UpstreamConnectionError(RelayError):
    """
    The upstream socket could not be opened, or terminated after subscribing.

    Attributes:
        code: WebSocket close code when the remote closed the socket
    """

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class MalformedFeedMessage(RelayError):
    """A feed message matched the candle channel but could not be normalized."""


class HistoryFetchError(RelayError):
    """The historical-data request failed at the transport or HTTP level."""


class SubscriberSendFailure(RelayError):
    """A message could not be handed to one downstream subscriber."""
