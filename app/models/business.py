from sqlalchemy import Column, Integer, String

from app.core.database import Base


class Business(Base):
	__tablename__ = "businesses"

	id = Column(Integer, primary_key=True)
	account_id = Column(String, unique=True, nullable=False)
	name = Column(String, nullable=True)
	website = Column(String, nullable=True)  # джерело target domain
