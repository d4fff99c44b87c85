"""Exception types for the compose client."""
from __future__ import annotations


class HuggnoteError(Exception):
    """Base exception for compose client errors."""


class RecordServiceError(HuggnoteError):
    """The order record service could not be reached or rejected a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationRequestError(HuggnoteError):
    """A variation request failed for a reason other than rate limiting."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(GenerationRequestError):
    """The generation service answered 429."""

    def __init__(self, message: str = "Rate limited by generation service") -> None:
        super().__init__(message, status_code=429)


class PromptBuildError(HuggnoteError):
    """The prompt builder returned no usable prompt."""


class CheckoutError(HuggnoteError):
    """Checkout could not be started."""


class MissingSelectionError(CheckoutError):
    """At least one song in the order has no selected variation."""

    def __init__(self, missing: list[int]) -> None:
        self.missing = missing
        songs = ", ".join(str(i + 1) for i in missing)
        super().__init__(
            f"Please select a variation for every song (missing: song {songs})."
        )


class NotAuthenticatedError(CheckoutError):
    """Checkout needs an authenticated identity."""

    def __init__(self) -> None:
        super().__init__("Please log in before proceeding to payment.")
