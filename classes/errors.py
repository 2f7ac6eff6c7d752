# classes/errors.py
from typing import List


class OracleError(Exception):
    """The classification oracle could not produce a usable answer."""


class OracleTimeoutError(OracleError):
    pass


class OracleResponseError(OracleError):
    pass


class DraftIncompleteError(Exception):
    def __init__(self, missing_fields: List[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(f"Draft is not dispatchable, missing: {', '.join(self.missing_fields)}")


class DispatchError(Exception):
    """Persistence failed while dispatching a draft. Safe to retry."""


class TicketNotFoundError(Exception):
    pass
