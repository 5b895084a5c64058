"""Client core for the storefront REST backend."""

from .app import StorefrontApp
from .auth_controller import AuthController
from .client_config import ClientConfig, get_config
from .credentials import Credential, CredentialManager, CredentialState
from .error_handling import AuthError, AuthErrorReason, ErrorKind, RequestError, Result
from .event_bus import EventBus
from .http_client import RequestGateway
from .payment_poller import PaymentPoller, PollHandle, PollOutcome, PollState
from .payment_status import PaymentPhase, classify_payment_status
from .storefront_api import StorefrontApi
from .token_storage import TokenStorage

__version__ = "0.1.0"

__all__ = [
    "AuthController",
    "AuthError",
    "AuthErrorReason",
    "ClientConfig",
    "Credential",
    "CredentialManager",
    "CredentialState",
    "ErrorKind",
    "EventBus",
    "PaymentPhase",
    "PaymentPoller",
    "PollHandle",
    "PollOutcome",
    "PollState",
    "RequestError",
    "RequestGateway",
    "Result",
    "StorefrontApi",
    "StorefrontApp",
    "TokenStorage",
    "classify_payment_status",
    "get_config",
]
