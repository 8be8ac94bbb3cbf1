"""Models for the outcome of commands sent to the audio provider."""

from __future__ import annotations

from dataclasses import dataclass, field

from mashumaro import DataClassDictMixin

from .enums import CommandAction
from .errors import GroupFormationFailed


@dataclass
class CommandResult(DataClassDictMixin):
    """Outcome of a single command sent to the provider."""

    action: CommandAction
    target: str  # room name of the device (or coordinator) that received the command
    status_code: int = 200
    body: str = ""
    retried: bool = False


@dataclass
class GroupStep(DataClassDictMixin):
    """Outcome of a single step within a (multi step) group command."""

    action: CommandAction
    target: str
    success: bool
    # a failed step marked as tolerated does not fail the whole choreography
    tolerated: bool = False
    error: str | None = None
    status_code: int | None = None


@dataclass
class GroupFormationResult(DataClassDictMixin):
    """Structured outcome of a group choreography (create or dissolve)."""

    coordinator: str
    members: list[str] = field(default_factory=list)
    steps: list[GroupStep] = field(default_factory=list)

    @property
    def failed_step(self) -> GroupStep | None:
        """Return the step that failed the choreography (if any)."""
        for step in self.steps:
            if not step.success and not step.tolerated:
                return step
        return None

    @property
    def success(self) -> bool:
        """Return True if all (non tolerated) steps succeeded."""
        return self.failed_step is None

    @property
    def applied(self) -> list[str]:
        """Return the targets of all joins/leaves that were applied."""
        return [
            step.target
            for step in self.steps
            if step.success and step.action in (CommandAction.JOIN, CommandAction.LEAVE)
        ]

    def add_step(self, step: GroupStep) -> GroupStep:
        """Register the outcome of a step."""
        self.steps.append(step)
        return step

    def raise_for_failure(self) -> None:
        """Raise GroupFormationFailed if one of the steps failed."""
        if (step := self.failed_step) is None:
            return
        index = self.steps.index(step) + 1
        msg = (
            f"Step {index}/{len(self.steps)} ({step.action} {step.target}) failed: {step.error}"
        )
        raise GroupFormationFailed(msg, step.status_code)
