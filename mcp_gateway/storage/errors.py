# mcp_gateway/storage/errors.py


class StorageConfigurationError(RuntimeError):
    """
    Raised when the key-value store is unbound or misconfigured.

    This is fatal: the gateway must refuse to start (or to serve the request)
    rather than treat every caller as unauthenticated.
    """

    def __init__(self, detail: str = "Key-value store is not configured."):
        self.detail = detail
        super().__init__(detail)
