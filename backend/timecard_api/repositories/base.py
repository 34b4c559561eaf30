from typing import TypeVar, Generic, Type, Optional, Any
from sqlalchemy.exc import SQLAlchemyError
from ..extensions import db

T = TypeVar('T')


class BaseRepository(Generic[T]):
    """
    Base repository class providing the write path shared by all models.
    """

    def __init__(self, model_class: Type[T]):
        self.model_class = model_class
        self.session = db.session

    def create(self, **kwargs) -> T:
        """
        Create and commit a new instance of the model.

        Raises:
            SQLAlchemyError: If database operation fails
        """
        try:
            instance = self.model_class(**kwargs)
            self.session.add(instance)
            self.session.commit()
            return instance
        except SQLAlchemyError as e:
            self.session.rollback()
            raise e

    def get_by_id(self, id: Any) -> Optional[T]:
        return self.session.get(self.model_class, id)

    def commit(self) -> None:
        """Commit the current transaction."""
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise e
