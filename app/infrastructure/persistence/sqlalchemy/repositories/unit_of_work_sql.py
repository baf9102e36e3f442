from sqlmodel import Session

from .....application.ports.unit_of_work import UnitOfWork


class SqlUnitOfWork(UnitOfWork):
    """Commit/rollback for the request session shared by all SQL repositories."""

    def __init__(self, session: Session):
        self.session = session

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()
