from sqlalchemy.orm import Session


class BaseRepository:
    """Base class for all repositories."""

    def __init__(self, session: Session):
        """
        Every derived “Repository” gets a SQLAlchemy Session injected.
        """
        self.session = session
