# bridge_errors.py
"""Error taxonomy for the agent bridges."""


class BridgeError(Exception):
    """Base class for everything a bridge raises."""


class NoInputFoundError(BridgeError):
    """No editable input region could be located on the page."""


class NoContentError(BridgeError):
    """send() got no message and nothing was mirrored in by the counterpart."""


class DiscoveryTimeoutError(BridgeError):
    """No response container showed up within the polling budget."""


class StreamingTimeoutError(BridgeError):
    """Generation did not settle within the round budget.

    Never escapes a bridge: send() catches it and returns ``partial_text``.
    """

    def __init__(self, message: str, partial_text: str = ""):
        super().__init__(message)
        self.partial_text = partial_text


class StaleNodeError(BridgeError):
    """A DOM reference was used after release or after its node left the document."""


class BridgeBusyError(BridgeError):
    """send() was called while a round is already in flight on this bridge."""
