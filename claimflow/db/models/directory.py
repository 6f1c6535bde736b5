import uuid
from sqlalchemy import Column, String, Uuid

from claimflow.db.base import Base


class DirectoryEntry(Base):
    """Staff directory row, imported from HR records and read by the core."""
    __tablename__ = "directory_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    emp_code = Column(String(50), nullable=True)
    name = Column(String(255), nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    designation = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    manager_name = Column(String(255), nullable=True)
    manager_email = Column(String(255), nullable=True)
    company = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
