"""Typed error hierarchy for machine provisioning.

Every error carries enough context (machine, phase, object name) to be
correlated with control-plane state by whoever drives the driver. Remote
causes are kept on the exception and chained with ``raise ... from``.
"""

from enum import Enum
from typing import Optional


class StatusCode(str, Enum):
    """Status code reported to the caller of the driver."""
    INVALID_ARGUMENT = "InvalidArgument"
    INTERNAL = "Internal"


class ProvisioningError(Exception):
    """Base error for all provisioning operations."""

    code = StatusCode.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        machine: Optional[str] = None,
        phase: Optional[str] = None,
    ):
        self.message = message
        self.machine = machine
        self.phase = phase
        super().__init__(message)

    def __repr__(self) -> str:
        parts = [f"{type(self).__name__}({self.message!r}"]
        if self.machine:
            parts.append(f"machine={self.machine!r}")
        if self.phase:
            parts.append(f"phase={self.phase!r}")
        return ", ".join(parts) + ")"


class InvalidArgumentError(ProvisioningError):
    """Malformed or missing request fields, or a provider mismatch."""

    code = StatusCode.INVALID_ARGUMENT


class ConfigurationError(ProvisioningError):
    """Bad provider spec, secret or credential file."""

    pass


class CredentialError(ConfigurationError):
    """Failure while turning a credential file into a client."""

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(f"{message}: {path}", phase="credentials")


class CredentialReadError(CredentialError):
    """Credential file could not be read."""

    pass


class CredentialParseError(CredentialError):
    """Credential file content is malformed."""

    pass


class NamespaceResolutionError(CredentialError):
    """No usable namespace in the credential file."""

    pass


class ClientConstructionError(CredentialError):
    """Client could not be built from a parsed credential file."""

    pass


class CredentialWatchError(CredentialError):
    """Credential directory could not be watched."""

    pass


class AllocationError(ProvisioningError):
    """Failure while obtaining a network identity for a machine."""

    phase_name = "allocate"

    def __init__(self, message: str, claim: str, cause: Optional[BaseException] = None):
        self.claim = claim
        self.cause = cause
        detail = f"{message} (claim {claim}, phase {self.phase_name})"
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail, phase=self.phase_name)


class AllocationLookupError(AllocationError):
    phase_name = "lookup"


class MissingPoolSelectorError(AllocationError):
    phase_name = "create"


class AllocationCreateError(AllocationError):
    phase_name = "create"


class AllocationTimeoutError(AllocationError):
    phase_name = "wait"


class AllocationPollError(AllocationError):
    phase_name = "wait"


class AddressResolutionError(AllocationError):
    phase_name = "resolve"


class ApplyError(ProvisioningError):
    """Control-plane write failed."""

    def __init__(self, target: str, cause: BaseException):
        self.target = target
        self.cause = cause
        super().__init__(f"error applying {target}: {cause}", phase="apply")


class RenderError(ProvisioningError):
    """Boot configuration artifact could not be rendered."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("phase", "render")
        super().__init__(message, **kwargs)


class MissingPayloadError(ProvisioningError):
    """Machine secret carries no raw boot payload."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("phase", "assemble")
        super().__init__(message, **kwargs)
