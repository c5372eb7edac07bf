"""
Base contract shared by the invitation contracts.
"""

from pydantic import BaseModel, ConfigDict


class BaseContract(BaseModel):
    """
    Contracts read straight off ORM rows, so attribute access is enabled.
    """
    model_config = ConfigDict(from_attributes=True)
