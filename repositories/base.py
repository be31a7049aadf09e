"""
Session handling shared by all repositories.
"""

from typing import Callable, Optional, TypeVar

from sqlmodel import Session

from db_engine import get_session

T = TypeVar("T")


def run_in_session(operation: Callable[[Session], T],
                   session: Optional[Session] = None,
                   commit: bool = False) -> T:
    """
    Run a repository operation in the caller's session or a private one.

    With a caller session the operation joins the caller's unit of work and
    nothing is committed here. Without one, a short-lived session is opened
    and committed when ``commit`` is set.
    """
    if session is not None:
        return operation(session)

    with get_session() as own_session:
        try:
            result = operation(own_session)
            if commit:
                own_session.commit()
            return result
        except Exception:
            own_session.rollback()
            raise
