"""Thread-local context for correlating log events.

HTTP requests carry a request id; delivery workers carry the id of the
queue job being processed. Both are attached to every log event emitted
on the same thread.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

_context = threading.local()


def set_request_id(request_id: str) -> None:
    """Store the request ID in thread-local storage.

    Args:
        request_id: The unique request identifier to store.
    """
    _context.request_id = request_id


def get_request_id() -> str | None:
    """Retrieve the request ID from thread-local storage.

    Returns:
        The current request ID, or None if not set.
    """
    return getattr(_context, "request_id", None)


def clear_request_id() -> None:
    """Clear the request ID from thread-local storage."""
    if hasattr(_context, "request_id"):
        delattr(_context, "request_id")


def get_job_id() -> str | None:
    """Return the queue job id bound to the current thread, if any."""
    return getattr(_context, "job_id", None)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Bind a queue job id to log events for the duration of the block.

    Args:
        job_id: Identifier of the job being processed.
    """
    previous = get_job_id()
    _context.job_id = job_id
    try:
        yield
    finally:
        if previous is None:
            del _context.job_id
        else:
            _context.job_id = previous
