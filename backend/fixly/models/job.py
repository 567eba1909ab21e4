from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, Text
from fixly.database import Base


class JobRecord(Base):
    """Persisted form of a job aggregate.

    ``document`` holds the full aggregate as JSON. The remaining columns are
    copies of the fields browse queries filter and sort on, refreshed on
    every save. Saves are conditional on ``version`` so two writers that
    loaded the same revision cannot both commit.
    """

    __tablename__ = "jobs"

    id = Column(Text, primary_key=True)
    version = Column(Integer, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="open")
    created_by = Column(Text, ForeignKey("users.id"), nullable=False)
    assigned_to = Column(Text, ForeignKey("users.id"))
    city = Column(Text, nullable=False)
    state = Column(Text, nullable=False)
    skills = Column(Text, nullable=False)  # ",plumbing,electrical,"
    urgency = Column(Text, nullable=False)
    job_type = Column(Text, nullable=False)
    experience_level = Column(Text, nullable=False)
    budget_type = Column(Text, nullable=False)
    budget_amount = Column(Float)
    featured = Column(Boolean, nullable=False, default=False)
    featured_until = Column(Text)
    deadline = Column(Text, nullable=False)
    views = Column(Integer, nullable=False, default=0)
    document = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
