class LedgerValidationError(ValueError):
    """Base class for caller mistakes rejected by the store or the ledger."""

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(self.message)


class InvalidKey(LedgerValidationError):
    """Exception raised when a store key is empty or not bytes."""

    def __init__(self, key: object, message: str = ""):
        self.key = key
        super().__init__(message or f"Invalid key: {key!r}")


class InvalidAddress(LedgerValidationError):
    """Exception raised when an account address is empty or malformed."""

    def __init__(self, address: object, message: str = ""):
        self.address = address
        super().__init__(message or f"Invalid address: {address!r}")


class InvalidArgument(LedgerValidationError):
    pass


class StorageUnavailable(Exception):
    """The durable storage medium failed. Fatal: the node must stop."""

    def __init__(self, message: str = "Storage unavailable", cause: Exception = None):
        self.message = message
        self.cause = cause
        super().__init__(self.message)
