"""Exception hierarchy for hourbill."""


class HourbillError(Exception):
    """Base class for all hourbill errors."""


class InvoiceNotFoundError(HourbillError):
    def __init__(self, invoice_id: str):
        super().__init__(f"Invoice not found: {invoice_id}")
        self.invoice_id = invoice_id


class InvalidTimeEntryError(HourbillError, ValueError):
    """A time entry ends before it starts."""

    def __init__(self, entry_id: str, message: str = ""):
        super().__init__(message or f"Time entry {entry_id} ends before it starts")
        self.entry_id = entry_id


class RenderError(HourbillError):
    """The document engine failed to produce a document."""


class RenderTimeoutError(RenderError):
    pass


class RenderFailureError(RenderError):
    pass


class StorageError(HourbillError):
    """Non-retryable storage failure (permissions, bad request, ...)."""

    def __init__(self, message: str, key: str = "", status_code: int | None = None):
        super().__init__(message)
        self.key = key
        self.status_code = status_code


class StorageConflictError(StorageError):
    """The store refused to overwrite an existing immutable object."""


class StorageTransientError(StorageError):
    """Network, throttling or server-side failure; the caller decides on backoff."""


class PipelineError(HourbillError):
    """A pipeline stage failed. The original exception is chained as __cause__.

    `stage` names the failing component; `state` is the pipeline state the
    run ended in and `reached` the last state it completed (None if none).
    """

    def __init__(self, invoice_id: str, stage: str, message: str, state=None, reached=None):
        super().__init__(f"[{stage}] invoice {invoice_id}: {message}")
        self.invoice_id = invoice_id
        self.stage = stage
        self.state = state
        self.reached = reached
