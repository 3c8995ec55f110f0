"""
Connector error types
"""


class ConnectorError(Exception):
    """Base class for connector failures"""


class ConnectionLimitError(ConnectorError):
    """Connection attempt refused by admission control"""

    def __init__(self, attempts: int, window_ms: int):
        self.attempts = attempts
        self.window_ms = window_ms
        super().__init__(
            f"Connection limit reached: {attempts} attempts within {window_ms}ms"
        )


class ConnectorStateError(ConnectorError):
    """Operation not allowed in the current connection state"""


class FrameDecodeError(ConnectorError):
    """Transport frame is not a JSON object"""

    def __init__(self, message: str, frame):
        self.frame = frame
        super().__init__(message)
