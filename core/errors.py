# core/errors.py


class ExpensePersistenceError(Exception):
    """An insert or update against the expense store did not go through."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ExpenseNotFoundError(LookupError):
    """No expense matched an update query."""

    def __init__(self, query: str):
        super().__init__(f"no expense matches {query!r}")
        self.query = query


class AmbiguousExpenseError(LookupError):
    """More than one expense matched an amount or date query."""

    def __init__(self, query: str, count: int):
        super().__init__(f"{count} expenses match {query!r}")
        self.query = query
        self.count = count
