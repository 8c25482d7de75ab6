"""
Job lifecycle state machine.

The stores apply status changes as compare-and-set updates; the source
states for each action come from ``JOB_WORKFLOW`` so the rules live in
one place.
"""

from recon_batch.domain.types import JobStatus
from recon_modules._workflow import Transition, Workflow

JOB_WORKFLOW = Workflow(
    name="job",
    description="Asynchronous job lifecycle",
    initial_state=JobStatus.PENDING.value,
    states=tuple(s.value for s in JobStatus),
    transitions=(
        Transition(JobStatus.PENDING.value, JobStatus.PROCESSING.value, action="claim"),
        Transition(JobStatus.PROCESSING.value, JobStatus.COMPLETED.value, action="finish"),
        Transition(JobStatus.PROCESSING.value, JobStatus.FAILED.value, action="finish"),
        Transition(JobStatus.PROCESSING.value, JobStatus.CANCELLED.value, action="finish"),
        Transition(JobStatus.PENDING.value, JobStatus.CANCELLED.value, action="cancel"),
        Transition(JobStatus.PENDING.value, JobStatus.FAILED.value, action="abandon"),
        Transition(JobStatus.PROCESSING.value, JobStatus.PROCESSING.value, action="cancel"),
        Transition(JobStatus.PROCESSING.value, JobStatus.FAILED.value, action="recover"),
    ),
    terminal_states=(
        JobStatus.COMPLETED.value,
        JobStatus.FAILED.value,
        JobStatus.CANCELLED.value,
    ),
)


def source_states(action: str, to_state: JobStatus | None = None) -> frozenset[JobStatus]:
    """States from which ``action`` (optionally to ``to_state``) is allowed."""
    return frozenset(
        JobStatus(t.from_state)
        for t in JOB_WORKFLOW.transitions
        if t.action == action and (to_state is None or t.to_state == to_state.value)
    )
