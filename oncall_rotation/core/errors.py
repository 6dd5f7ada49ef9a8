# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Domain exceptions raised by services and mapped to HTTP codes by controllers."""


class RotationError(Exception):
    """Base class for rotation-service errors."""


class SprintNotFoundError(RotationError, KeyError):
    def __str__(self) -> str:
        return self.args[0] if self.args else "Sprint not found"


class OverrideNotFoundError(RotationError, KeyError):
    def __str__(self) -> str:
        return self.args[0] if self.args else "Override not found"


class OverrideConflictError(RotationError):
    """A second approval was attempted for an already-approved (sprint, role) slot."""

    def __init__(self, sprint_index: int, role: str, existing_id: int) -> None:
        super().__init__(
            f"Sprint {sprint_index} role '{role}' already has approved override "
            f"{existing_id}; approve with supersede=true to replace it"
        )
        self.sprint_index = sprint_index
        self.role = role
        self.existing_id = existing_id


class InvalidSprintEditError(RotationError, ValueError):
    """Sprint edits must carry a reason for the audit log."""


class StateLockTimeoutError(RotationError):
    """The single-writer state lock could not be acquired in time."""
