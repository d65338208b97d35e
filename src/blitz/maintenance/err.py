class MaintenanceException(Exception):
    pass


class InvalidStateError(MaintenanceException):

    def __init__(self, message: str):
        super().__init__(message)


class InvalidConfiguration(MaintenanceException):

    def __init__(self, message: str):
        super().__init__(message)


class StoreUnavailableError(MaintenanceException):
    """
    Raised when the execution store cannot be read or written, including a transaction that failed to commit.
    The original driver error is available as ``__cause__``.
    """


class PassCancelled(MaintenanceException):
    pass
