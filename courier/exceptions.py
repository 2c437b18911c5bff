from rest_framework import status


class CourierError(Exception):
    """Base exception for courier orchestration errors."""

    status_code = status.HTTP_400_BAD_REQUEST


class Unserviceable(CourierError):
    """Raised when a location has no serviceable-area mapping for a provider."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class ProviderCallFailed(CourierError):
    """Raised when a network, HTTP or auth failure occurs calling a provider."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, provider: str, message: str, payload=None):
        self.provider = provider
        self.payload = payload
        super().__init__(f"{provider}: {message}")


class NoCourierAvailable(CourierError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "No courier available for this route"):
        super().__init__(message)


class CredentialMissing(CourierError):
    status_code = status.HTTP_404_NOT_FOUND


class DuplicateCredential(CourierError):
    status_code = status.HTTP_409_CONFLICT


class TokenRefreshFailed(CourierError):
    status_code = status.HTTP_502_BAD_GATEWAY


class InvalidStatusTransition(CourierError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str, message: str):
        self.current_status = current_status
        super().__init__(message)


class ServiceAreaMappingMissing(Unserviceable):
    """Area rows disappeared between quoting and dispatch."""

    status_code = status.HTTP_409_CONFLICT


class DispatchFailed(CourierError):
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, courier_order=None):
        self.courier_order = courier_order
        super().__init__(message)


class ProviderInUse(CourierError):
    status_code = status.HTTP_409_CONFLICT


class AdapterNotRegistered(CourierError):
    status_code = status.HTTP_400_BAD_REQUEST


class CourierObjectNotFound(CourierError):
    status_code = status.HTTP_404_NOT_FOUND
