"""Submit a serialized batch and classify the backend's answer."""

import logging
from typing import Callable, FrozenSet

from ..client.codes import ErrorCode
from ..core.errors import BackendError, BackendTransportError
from ..schema.models import WriteOutcome, WriteResult

LOG = logging.getLogger(__name__)

_RECOVERABLE_CODES = {
    ErrorCode.SERIES_NOT_FOUND: WriteOutcome.MISSING_SERIES,
    ErrorCode.REPO_NOT_FOUND: WriteOutcome.MISSING_REPO,
    ErrorCode.SCHEMA_MISMATCH: WriteOutcome.SCHEMA_MISMATCH,
}


class WriteSubmitter:
    """
    Performs exactly one write per call, never retries.

    Args:
        write: Backend write call, ``write(repo, buffer)``
        recoverable: Outcomes the owning adapter knows how to recover from;
            a recognised code outside this set is treated as fatal
    """

    def __init__(self, write: Callable[[str, bytes], None], recoverable: FrozenSet[WriteOutcome]):
        self.write = write
        self.recoverable = recoverable

    def submit(self, repo: str, buffer: bytes) -> WriteResult:
        try:
            self.write(repo, buffer)
        except BackendTransportError as e:
            LOG.error(f"Could not reach backend for repo {repo}: {e}")
            return WriteResult(WriteOutcome.FATAL, e)
        except BackendError as e:
            return self.classify(repo, e)
        return WriteResult(WriteOutcome.OK)

    def classify(self, repo: str, error: BackendError) -> WriteResult:
        """Map a backend error to a WriteResult, logging the decision."""
        if error.code is ErrorCode.FIELD_TYPE_CONFLICT:
            # Retrying would keep the conflicting points stuck in the buffer forever
            LOG.error(f"Field type conflict, dropping conflicted points: {error}")
            return WriteResult(WriteOutcome.OK, error)

        outcome = _RECOVERABLE_CODES.get(error.code)
        if outcome is not None and outcome in self.recoverable:
            LOG.error(f"Write to repo {repo} failed ({outcome.value}): {error}")
            return WriteResult(outcome, error)

        LOG.error(f"Write to repo {repo} failed: {error}")
        return WriteResult(WriteOutcome.FATAL, error)
