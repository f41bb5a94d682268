from sqlalchemy import JSON, Column, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class StoredDocument(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True)
    collection = Column(String, index=True, nullable=False)
    position = Column(Integer, nullable=False)  # Порядок внутри коллекции
    doc_id = Column(String)
    data = Column(JSON, nullable=False)
