"""Module for exceptions caused by node providers"""


class NoHostsProvided(Exception):
    pass


class TransportError(Exception):
    """Connection-level failure that outlived the retry budget."""
    reason: str

    def __init__(self, *args, reason: str = 'exhausted'):
        self.reason = reason
        super().__init__(*args)


class ProtocolError(Exception):
    """Node answered, but the answer is not usable. Never retried."""


class NotOkResponse(ProtocolError):
    status: int
    text: str

    def __init__(self, *args, status: int, text: str):
        self.status = status
        self.text = text
        super().__init__(*args)
