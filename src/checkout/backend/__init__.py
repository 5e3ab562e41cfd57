"""Storefront backend factory.

Provides get_backend() / set_backend() to swap implementations:
- HttpStorefrontBackend when STOREFRONT_API_URL is configured
- FakeBackend for development and testing otherwise
"""

from checkout.backend.fake_adapter import FakeBackend
from checkout.backend.http_adapter import HttpStorefrontBackend
from checkout.backend.port import StorefrontBackend
from checkout.config import get_settings

_current_backend: StorefrontBackend | None = None


def get_backend() -> StorefrontBackend:
    """Return the current storefront backend."""
    global _current_backend
    if _current_backend is None:
        settings = get_settings()
        if settings.api_url:
            _current_backend = HttpStorefrontBackend(settings.api_url, timeout=settings.api_timeout)
        else:
            _current_backend = FakeBackend()
    return _current_backend


def set_backend(backend: StorefrontBackend) -> None:
    """Override the active backend (useful for tests)."""
    global _current_backend
    _current_backend = backend


def reset_backend() -> None:
    """Reset to the configured default backend."""
    global _current_backend
    _current_backend = None
