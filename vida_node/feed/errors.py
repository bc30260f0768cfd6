class FeedUnavailable(Exception):
    """Exception raised when the upstream feed cannot be reached."""

    def __init__(self, message: str = "Transaction feed unavailable"):
        self.message = message
        super().__init__(self.message)


class MalformedTransaction(Exception):
    """Exception raised when a transaction payload cannot be decoded."""

    def __init__(self, reason: str, payload: bytes = b""):
        self.reason = reason
        self.payload = payload
        self.message = f"Malformed transaction: {reason}"
        super().__init__(self.message)
