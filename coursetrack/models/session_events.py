"""Events a course session emits to the UI layer."""

from __future__ import annotations

from dataclasses import dataclass

from coursetrack.models.certificate import Certificate


@dataclass(frozen=True, slots=True)
class CompletionDetected:
    """The course was detected as fully completed.

    Emitted once with issuing=True when the completion sequence starts,
    then once more with the resolved certificate, or failed=True when
    issuance did not succeed.  is_new_completion is False when the
    completion was discovered while loading existing progress.
    """

    certificate: Certificate | None
    issuing: bool = False
    failed: bool = False
    is_new_completion: bool = True


@dataclass(frozen=True, slots=True)
class ProgressUpdated:
    percent: int


SessionEvent = CompletionDetected | ProgressUpdated
