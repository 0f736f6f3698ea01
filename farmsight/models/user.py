from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from farmsight.core.timeutils import utcnow
from farmsight.db.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)

    full_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)

    role = Column(String, nullable=False, default="farmer")  # farmer | admin
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)

    farms = relationship("Farm", back_populates="owner")
