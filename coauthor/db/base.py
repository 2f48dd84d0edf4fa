import uuid

from sqlalchemy import Column, Uuid

from coauthor.core.db import Base


class BaseModel(Base):
    """Общий суррогатный ключ строк"""
    __abstract__ = True

    uuid = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
