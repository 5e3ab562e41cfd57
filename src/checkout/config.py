"""Runtime settings for the checkout service, read from environment variables."""

import os
from dataclasses import dataclass


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class CheckoutSettings:
    """Settings consumed by adapters and services.

    Attributes:
        environment: Value of PROTEAN_ENV (development, test, production).
        api_url: Base URL of the storefront backend REST API. Empty means the
            FakeBackend is used.
        api_timeout: Per-request timeout (seconds) for backend calls.
        currency: Currency code shown to the payment widget.
        fallback_email_domain: Domain used to synthesise a payer email when
            the customer has none on file.
        verify_attempts: Maximum verification requests per callback.
        verify_timeout: Per-request timeout (seconds) for verification.
        verify_backoff: Pause (seconds) between verification retries.
        stale_in_flight_seconds: Age after which an in-flight flag left by a
            dead request is reset on resume.
        promo_discount: Promotional discount applied to every order (>= 0).
        promo_code: Code reported to the backend with the promotional discount.
        credit: Store credit applied to every order (>= 0).
    """

    environment: str = "development"
    api_url: str = ""
    api_timeout: float = 10.0
    currency: str = "NGN"
    fallback_email_domain: str = "customer.storefront.example"
    verify_attempts: int = 3
    verify_timeout: float = 5.0
    verify_backoff: float = 0.5
    stale_in_flight_seconds: int = 120
    promo_discount: float = 0.0
    promo_code: str = ""
    credit: float = 0.0

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        return cls(
            environment=os.environ.get("PROTEAN_ENV", "development"),
            api_url=os.environ.get("STOREFRONT_API_URL", "").rstrip("/"),
            api_timeout=_float_env("STOREFRONT_API_TIMEOUT", 10.0),
            currency=os.environ.get("CHECKOUT_CURRENCY", "NGN"),
            fallback_email_domain=os.environ.get("CHECKOUT_FALLBACK_EMAIL_DOMAIN", "customer.storefront.example"),
            verify_attempts=_int_env("CHECKOUT_VERIFY_ATTEMPTS", 3),
            verify_timeout=_float_env("CHECKOUT_VERIFY_TIMEOUT", 5.0),
            verify_backoff=_float_env("CHECKOUT_VERIFY_BACKOFF", 0.5),
            stale_in_flight_seconds=_int_env("CHECKOUT_STALE_IN_FLIGHT_SECONDS", 120),
            promo_discount=_float_env("CHECKOUT_PROMO_DISCOUNT", 0.0),
            promo_code=os.environ.get("CHECKOUT_PROMO_CODE", ""),
            credit=_float_env("CHECKOUT_CREDIT", 0.0),
        )


_settings: CheckoutSettings | None = None


def get_settings() -> CheckoutSettings:
    """Return process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = CheckoutSettings.from_env()
    return _settings


def set_settings(settings: CheckoutSettings) -> None:
    """Override settings (useful for tests)."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    global _settings
    _settings = None
