from fixly.models.user import User
from fixly.models.job import JobRecord

__all__ = ["User", "JobRecord"]
