"""Custom exception hierarchy for the cluster membership daemon."""


class ClusterError(Exception):
    """Base exception for all daemon errors."""


class ConfigError(ClusterError):
    """Invalid or missing configuration."""


class DiscoveryError(ClusterError):
    """The discovery provider could not produce a candidate peer list."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ConnectionManagerError(ClusterError):
    """Error communicating with the local node agent."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
