class RegistryError(Exception):
    pass


class RegistryURLError(RegistryError, ValueError):
    pass


class StatusError(RegistryError):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status code: {status_code}")
        self.status_code = status_code


class AuthDiscoveryError(RegistryError):
    """The registry does not look like a v2 registry with Bearer auth."""


class ChallengeError(AuthDiscoveryError):
    pass


class DecodeError(RegistryError, ValueError):
    pass
