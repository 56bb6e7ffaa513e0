"""Authenticated reviewer sessions.

All sessions currently share one namespace: they run on the same
executor and see the same remembered decisions. The approval pipeline
does not read sessions; they are stored alongside decisions for the
components that issue and verify them.
"""

from pydantic import BaseModel, ConfigDict


class Session(BaseModel):
    """Session identity.

    >>> Session(id="s1", secret="hunter2").id
    's1'
    """

    model_config = ConfigDict(frozen=True)

    id: str
    secret: str
