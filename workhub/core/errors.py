"""Error taxonomy shared by every layer.

All errors are ``HTTPException`` subclasses so that a FastAPI host can surface
them as-is; the ``kind`` attribute is the stable machine-checkable tag.
"""

from typing import List, Optional

from fastapi import HTTPException, status


class WorkhubError(HTTPException):
    kind = "error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str):
        super().__init__(status_code=self.http_status, detail=message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(WorkhubError):
    kind = "validation_error"
    http_status = 422  # unprocessable entity

    def __init__(self, message: str, rule: Optional[str] = None):
        super().__init__(message)
        self.rule = rule

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.rule:
            data["rule"] = self.rule
        return data


class SlugGenerationError(ValidationError):
    def __init__(self, name: str):
        super().__init__(f"Cannot derive a slug from name '{name}'", rule="slug")


class InvalidTransitionError(ValidationError):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Task cannot move from '{current}' to '{target}'", rule="status_transition"
        )
        self.current = current
        self.target = target


class NotFoundError(WorkhubError):
    kind = "not_found"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, identifier):
        super().__init__(f"{resource} with ID {identifier} not found")
        self.resource = resource
        self.identifier = identifier


class ForbiddenError(WorkhubError):
    kind = "forbidden"
    http_status = status.HTTP_403_FORBIDDEN

    def __init__(self, action: str, resource: str):
        super().__init__(f"You are not allowed to {action} this {resource}")
        self.action = action
        self.resource = resource


class ConflictError(WorkhubError):
    kind = "conflict"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, message: str, suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.suggestions = suggestions or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.suggestions:
            data["suggestions"] = self.suggestions
        return data


class PersistenceError(WorkhubError):
    kind = "persistence_error"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR


class StorageError(PersistenceError):
    pass
