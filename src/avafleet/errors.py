# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/avafleet/errors.py

from __future__ import annotations

from typing import Iterable, Optional


class FleetError(RuntimeError):
    """Base class for every avafleet failure."""


# ----- Spec / configuration -----

class ConfigError(FleetError):
    """Raised when the spec file cannot be used."""

class SpecNotFoundError(ConfigError):
    """Raised when the spec file does not exist."""

class SpecDecodeError(ConfigError):
    """Raised when the spec file is not valid YAML or does not match the schema."""

class SpecValidationError(ConfigError):
    """Raised when a decoded spec violates a structural rule."""

class UnknownKindError(ConfigError, ValueError):
    """Raised when a stack name, object key or node kind cannot be decoded."""


# ----- Provisioning -----

class ProvisioningError(FleetError):
    """
    A cloud operation failed.

    Carries the phase and the resource it was working on so the CLI can
    print where a run stopped.
    """

    def __init__(
        self,
        message: str,
        *,
        phase: Optional[str] = None,
        resource: Optional[str] = None,
    ):
        self.phase = phase
        self.resource = resource
        parts = [message]
        if phase:
            parts.append(f"phase={phase}")
        if resource:
            parts.append(f"resource={resource}")
        super().__init__(" | ".join(parts))

class StackFailedError(ProvisioningError):
    """Raised when a stack reaches a permanent failure status."""

    def __init__(self, stack_name: str, status: str, reason: Optional[str] = None, **kw):
        self.stack_name = stack_name
        self.status = status
        msg = f"stack {stack_name} reached {status}"
        if reason:
            msg += f" ({reason})"
        kw.setdefault("resource", stack_name)
        super().__init__(msg, **kw)

class MissingStackOutputError(ProvisioningError):
    """Raised when a stack finished without an output the next phase needs."""

    def __init__(self, stack_name: str, missing: Iterable[str], **kw):
        self.stack_name = stack_name
        self.missing = sorted(missing)
        kw.setdefault("resource", stack_name)
        super().__init__(
            f"stack {stack_name} is missing outputs: {', '.join(self.missing)}", **kw
        )

class ResourceConflictError(ProvisioningError):
    """Raised on an attempt to overwrite a resource field that is already set."""


class IdentityMismatchError(FleetError):
    """Raised when the caller identity differs from the one recorded in the spec."""

    def __init__(self, recorded: str, current: str):
        self.recorded = recorded
        self.current = current
        super().__init__(f"identity mismatch: spec has {recorded}, caller is {current}")


# ----- Waits -----

class FleetTimeoutError(FleetError, TimeoutError):
    """Base class for bounded waits that ran out of time."""

class StackTimeoutError(FleetTimeoutError):
    def __init__(self, stack_name: str, desired: str, timeout_s: float, last_status: Optional[str]):
        self.stack_name = stack_name
        self.desired = desired
        self.timeout_s = timeout_s
        self.last_status = last_status
        super().__init__(
            f"stack {stack_name} did not reach {desired} within {timeout_s:.0f}s "
            f"(last status: {last_status})"
        )

class HealthCheckError(FleetTimeoutError):
    def __init__(self, endpoint: str, attempts: int):
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(f"{endpoint} not healthy after {attempts} attempts")

class RendezvousIncompleteError(FleetTimeoutError):
    """Raised when fewer nodes than expected published readiness before the deadline."""

    def __init__(self, kind: str, observed: int, expected: int):
        self.kind = kind
        self.observed = observed
        self.expected = expected
        super().__init__(f"{kind}: {observed}/{expected} nodes ready before deadline")


# ----- Agent -----

class AgentError(FleetError):
    """Base class for node bootstrap agent failures."""

class MetadataError(AgentError):
    """Raised when instance metadata cannot be read."""

class MissingTagsError(AgentError):
    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"instance is missing required tags: {', '.join(self.missing)}")

class ArtifactError(AgentError):
    """Raised when a shared artifact cannot be downloaded or unpacked."""


# ----- Envelopes -----

class EnvelopeError(FleetError):
    """Raised when a sealed blob is malformed or fails authentication."""
