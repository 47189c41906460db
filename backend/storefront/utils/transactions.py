from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


class TransactionStateError(RuntimeError):
    pass


@contextmanager
def smart_transaction(session: Session, outermost: bool = False) -> Iterator[Session]:
    """
    Begin a transaction on the given Session.

    If a transaction is already active a nested SAVEPOINT is used, unless
    `outermost` is set: then the caller must hand over a session with no
    open transaction, since the block has to own the real COMMIT.

        with smart_transaction(db, outermost=True):
            ... DB work, committed or rolled back as one unit ...
    """
    if session.in_transaction():
        if outermost:
            raise TransactionStateError(
                "session already has an open transaction; commit or roll back first"
            )
        cm = session.begin_nested()
    else:
        cm = session.begin()
    with cm:
        yield session
