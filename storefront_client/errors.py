"""
Client Error Taxonomy

Every failure the data layer surfaces is an ApiError (network path) or a
CartError (cart-local invariant). Callers branch on the class or on `status`.
"""

from typing import Optional, Any, Dict, List

from .config import HTTP_STATUS, ERROR_MESSAGES


class ApiError(Exception):
    """Base class for all REST call failures"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        errors: Optional[Dict[str, List[str]]] = None,
        code: Optional[str] = None
    ):
        """
        Initialize API error

        Args:
            message: Human-readable error message
            status: HTTP status, 0 for a pure network failure, None if unknown
            errors: Field-level validation map from the response body
            code: Optional machine-readable error code
        """
        self.message = message
        self.status = status
        self.errors = errors
        self.code = code
        super().__init__(message)

    def user_message(self) -> str:
        """Localized user-facing message for this error"""
        if self.status == HTTP_STATUS.UNAUTHORIZED:
            return ERROR_MESSAGES["UNAUTHORIZED"]
        if self.status == HTTP_STATUS.VALIDATION_ERROR:
            return ERROR_MESSAGES["VALIDATION_ERROR"]
        if self.status == HTTP_STATUS.NETWORK_FAILURE:
            return ERROR_MESSAGES["NETWORK_ERROR"]
        if self.status == HTTP_STATUS.TIMEOUT:
            return ERROR_MESSAGES["TIMEOUT"]
        if self.status is not None and self.status >= HTTP_STATUS.SERVER_ERROR:
            return ERROR_MESSAGES["SERVER_ERROR"]
        return self.message or ERROR_MESSAGES["UNKNOWN"]

    def validation_messages(self) -> List[str]:
        """Flatten the field validation map into a single list"""
        if not self.errors:
            return []

        messages: List[str] = []
        for field_errors in self.errors.values():
            if isinstance(field_errors, (list, tuple)):
                messages.extend(str(e) for e in field_errors)
            else:
                messages.append(str(field_errors))
        return messages

    def is_retryable(self) -> bool:
        """Whether repeating the same request may succeed"""
        return (
            self.status is None
            or self.status == HTTP_STATUS.NETWORK_FAILURE
            or self.status == HTTP_STATUS.TIMEOUT
            or self.status >= HTTP_STATUS.SERVER_ERROR
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to the response envelope shape"""
        error_dict: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "status": self.status,
        }
        if self.errors:
            error_dict["errors"] = self.errors
        if self.code:
            error_dict["code"] = self.code
        return error_dict

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, status={self.status!r})"


class AuthenticationError(ApiError):
    """Missing, invalid or expired token"""

    def __init__(self, message: str = ERROR_MESSAGES["UNAUTHORIZED"],
                 errors: Optional[Dict] = None):
        super().__init__(message, HTTP_STATUS.UNAUTHORIZED, errors, code="unauthorized")


class ValidationError(ApiError):
    """422 with a field-level error map"""

    def __init__(self, message: str = ERROR_MESSAGES["VALIDATION_ERROR"],
                 errors: Optional[Dict] = None):
        super().__init__(message, HTTP_STATUS.VALIDATION_ERROR, errors, code="validation")


class ClientError(ApiError):
    """Any other 4xx response"""

    def __init__(self, message: str, status: int, errors: Optional[Dict] = None):
        super().__init__(message, status, errors, code="client_error")


class ServerError(ApiError):
    """5xx response"""

    def __init__(self, message: str = ERROR_MESSAGES["SERVER_ERROR"],
                 status: int = HTTP_STATUS.SERVER_ERROR):
        super().__init__(message, status, code="server_error")


class NetworkError(ApiError):
    """Connection failure (status 0) or timeout (status 408)"""

    def __init__(self, message: str = ERROR_MESSAGES["NETWORK_ERROR"],
                 status: int = HTTP_STATUS.NETWORK_FAILURE):
        super().__init__(message, status, code="timeout" if status == HTTP_STATUS.TIMEOUT else "network")


class ResponseParseError(ApiError):
    """Successful status but the body is not JSON even after BOM stripping"""

    def __init__(self, status: int, body_preview: str = ""):
        super().__init__(ERROR_MESSAGES["INVALID_RESPONSE"], status, code="invalid_response")
        self.body_preview = body_preview

    def is_retryable(self) -> bool:
        return False


class RequestQueuedError(NetworkError):
    """A write failed on the network and was stored in the offline queue"""

    def __init__(self, queue_id: str, cause: Optional[NetworkError] = None):
        status = cause.status if cause is not None else HTTP_STATUS.NETWORK_FAILURE
        super().__init__("Request queued for when connection is restored", status)
        self.queue_id = queue_id
        self.code = "queued"

    def to_dict(self) -> Dict[str, Any]:
        error_dict = super().to_dict()
        error_dict["queued"] = True
        error_dict["queue_id"] = self.queue_id
        return error_dict


class CartError(Exception):
    """Base class for cart-local failures"""

    def __init__(self, message: str, item_id: Optional[str] = None):
        self.message = message
        self.item_id = item_id
        super().__init__(message)


class StockError(CartError):
    """Requested quantity exceeds the available stock"""

    def __init__(self, available: int, requested: int, item_id: Optional[str] = None):
        super().__init__(
            f"Stok tidak mencukupi. Tersedia: {available}, diminta: {requested}",
            item_id
        )
        self.available = available
        self.requested = requested


class CartItemNotFoundError(CartError):
    """No cart line with the given identity"""

    def __init__(self, item_id: str):
        super().__init__("Item tidak ditemukan di keranjang", item_id)


class CacheCorruptionError(Exception):
    """A persisted cache entry could not be decoded"""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt cache entry {key}: {reason}")


class StorageError(Exception):
    """The persistent key-value store is unavailable"""


class ErrorHandler:
    """Utility class for handling and formatting errors"""

    @staticmethod
    def handle_exception(e: Exception) -> Dict[str, Any]:
        """
        Convert any exception into a failure envelope

        Args:
            e: Exception to handle

        Returns:
            Dict with success=False, message, status and optional errors
        """
        if isinstance(e, ApiError):
            envelope = e.to_dict()
            envelope["message"] = e.user_message()
            return envelope

        if isinstance(e, StockError):
            return {
                "success": False,
                "message": e.message,
                "status": None,
                "available": e.available,
            }

        if isinstance(e, CartError):
            return {"success": False, "message": e.message, "status": None}

        return {
            "success": False,
            "message": str(e) or ERROR_MESSAGES["UNKNOWN"],
            "status": None,
            "exception_type": type(e).__name__,
        }
