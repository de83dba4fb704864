"""Base repository class with common functionality."""

from sqlalchemy.orm import Session


class BaseRepository:
    """Base repository bound to a caller-owned session.

    Repositories never commit; the enclosing unit of work decides whether
    the changes are kept.
    """

    def __init__(self, session: Session):
        self.session = session
