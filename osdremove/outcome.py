import enum
from dataclasses import dataclass
from typing import Any, Optional


class Status(enum.Enum):
    SUCCEEDED = 'succeeded'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass(frozen=True)
class RemovalOutcome:
    """
    What happened to one requested OSD identifier. ``reason`` carries the
    skip reason or the exception that failed the removal.
    """
    identifier: str
    status: Status
    osd_id: Optional[int] = None
    reason: Any = None

    @classmethod
    def succeeded(cls, identifier, osd_id):
        return cls(identifier, Status.SUCCEEDED, osd_id)

    @classmethod
    def skipped(cls, identifier, reason, osd_id=None):
        return cls(identifier, Status.SKIPPED, osd_id, reason)

    @classmethod
    def failed(cls, identifier, osd_id, cause):
        return cls(identifier, Status.FAILED, osd_id, cause)

    @property
    def detail(self) -> str:
        return '' if self.reason is None else str(self.reason)


class StepKind(enum.Enum):
    OK = 'ok'
    # logged, the removal goes on
    ADVISORY = 'advisory'
    # the removal stops here
    FATAL = 'fatal'


@dataclass(frozen=True)
class StepResult:
    step: str
    kind: StepKind
    error: Optional[BaseException] = None

    @classmethod
    def ok(cls, step):
        return cls(step, StepKind.OK)

    @classmethod
    def advisory(cls, step, error):
        return cls(step, StepKind.ADVISORY, error)

    @classmethod
    def fatal(cls, step, error):
        return cls(step, StepKind.FATAL, error)
