"""Pydantic schemas for runner identity."""
from typing import FrozenSet, List, Optional
from pydantic import BaseModel, Field, field_serializer, field_validator


def normalize_labels(labels) -> FrozenSet[str]:
    """
    Normalize a label collection.

    Accepts a comma-separated string or any iterable of strings. Labels are
    trimmed and lower-cased; empty entries are dropped.

    Args:
        labels: Labels as a CSV string or iterable

    Returns:
        FrozenSet[str]: Normalized labels
    """
    if labels is None:
        return frozenset()
    if isinstance(labels, str):
        labels = labels.split(",")
    return frozenset(label.strip().lower() for label in labels if label and label.strip())


class RunnerIdentity(BaseModel):
    """
    Long-lived identity issued by the controller at registration.

    Immutable until the runner is removed and registered again.
    """

    id: str = Field(..., min_length=1, description="Controller-assigned runner ID")
    name: str = Field(..., min_length=1, description="Runner display name")
    labels: FrozenSet[str] = Field(default_factory=frozenset, description="Routing labels")
    credential: str = Field(..., min_length=1, description="Runner auth credential")
    url: str = Field(..., min_length=1, description="Controller base URL")

    model_config = {"frozen": True}

    @field_validator("labels", mode="before")
    @classmethod
    def _normalize_labels(cls, value):
        return normalize_labels(value)

    @field_serializer("labels")
    def _serialize_labels(self, labels: FrozenSet[str]) -> List[str]:
        return sorted(labels)

    def __repr__(self) -> str:
        # Keep the credential out of logs and tracebacks.
        return f"RunnerIdentity(id={self.id!r}, name={self.name!r}, labels={sorted(self.labels)!r})"

    __str__ = __repr__


class RegistrationRequest(BaseModel):
    """Body of a registration request sent to the controller."""

    token: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    labels: List[str] = Field(default_factory=list)


class RegistrationResponse(BaseModel):
    """Controller answer to a successful registration."""

    id: str
    name: str
    labels: Optional[List[str]] = None
    credential: str
