from typing import Optional
from sqlmodel import SQLModel, Field

class User(SQLModel, table=True):
    """
    Local record of the identity directory.
    The store only reads it to denormalize display names and emails.
    """
    __tablename__ = "useraccount"

    id: str = Field(primary_key=True, index=True)
    username: str = Field(index=True, unique=True)
    name: Optional[str] = None
    email: Optional[str] = None
