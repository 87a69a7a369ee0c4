from __future__ import annotations


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


class ProviderError(RuntimeError):
    """A provider call reached the remote side and was rejected or failed."""

    def __init__(self, provider: str, code: str, message: str = ""):
        self.provider = provider
        self.code = code
        super().__init__(f"{provider.upper()}_{code}:{message or code}")
