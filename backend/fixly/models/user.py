from sqlalchemy import Boolean, Column, Float, Integer, Text
from fixly.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Text, primary_key=True)
    username = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True)
    password_hash = Column(Text, nullable=False)
    role = Column(Text, nullable=False)
    city = Column(Text)
    skills = Column(Text, nullable=False, default="[]")  # JSON list
    rating_average = Column(Float, nullable=False, default=0)
    rating_count = Column(Integer, nullable=False, default=0)
    jobs_posted = Column(Integer, nullable=False, default=0)
    jobs_completed = Column(Integer, nullable=False, default=0)
    total_earnings = Column(Float, nullable=False, default=0)
    banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(Text, nullable=False)

    def add_rating(self, rating: int):
        total = self.rating_average * self.rating_count + rating
        self.rating_count += 1
        self.rating_average = round(total / self.rating_count, 2)
