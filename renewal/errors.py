"""
Error taxonomy for a renewal run.

Everything here is fatal to the run.  The orchestrator catches these (and any
unclassified transport / ACME error) at the top level and turns them into a
structured failure result; nothing propagates past ``RenewalOrchestrator.run``.
"""
from __future__ import annotations


class RenewalError(Exception):
    """Base class for classified renewal failures."""


class ChallengeNotFound(RenewalError):
    """The CA did not offer a dns-01 challenge for an authorization."""

    def __init__(self, domain: str, offered: list[str] | None = None) -> None:
        self.domain = domain
        self.offered = offered or []
        offered_str = ", ".join(self.offered) or "none"
        super().__init__(f"No dns-01 challenge offered for {domain} (offered: {offered_str})")


class DNSPropagationTimeout(RenewalError):
    """The expected TXT value never became visible through the resolver."""

    def __init__(self, record_name: str, attempts: int) -> None:
        self.record_name = record_name
        self.attempts = attempts
        super().__init__(
            f"TXT record {record_name} not visible after {attempts} resolver polls"
        )


class ChallengeVerificationExhausted(RenewalError):
    """Every attempt of the ACME verify-challenge call failed."""

    def __init__(self, domain: str, attempts: int, last_error: BaseException | None = None) -> None:
        self.domain = domain
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(
            f"Challenge verification for {domain} failed after {attempts} attempts{detail}"
        )


class ProviderAPIError(RenewalError):
    """A DNS or CDN provider reported an error for a request."""

    def __init__(self, provider: str, operation: str, message: str, code: str = "") -> None:
        self.provider = provider
        self.operation = operation
        self.message = message
        self.code = code
        prefix = f"{code} - " if code else ""
        super().__init__(f"{provider} {operation} failed: {prefix}{message}")
