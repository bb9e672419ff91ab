from typing import Optional


class IndexerError(Exception):
    pass


class ConfigError(IndexerError):
    pass


class BackfillInterrupted(IndexerError):
    """A backfill run stopped before reaching the chain head.

    ``last_block`` is the last block whose chunk was fully processed; resume
    from ``last_block + 1``.
    """

    def __init__(self, last_block: int, cause: Optional[BaseException] = None):
        self.last_block = last_block
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"backfill interrupted after block {last_block}{detail}")
