"""Self-validating scalars.

Every value object is immutable and compares by value. Construction with an
invalid value raises ``ValidationError`` naming the rule that failed.
"""

import re
from dataclasses import dataclass, field

from email_validator import EmailNotValidError, validate_email

from workhub.core.errors import SlugGenerationError, ValidationError

ATTACHMENT_NAMESPACE = "task-attachments/"

_SLUG_INVALID = re.compile(r"[^A-Za-z0-9-]+")
_HYPHENS = re.compile(r"-{2,}")


def _check_length(label: str, value: str, minimum: int, maximum: int) -> None:
    if len(value) < minimum:
        raise ValidationError(
            f"{label} must be at least {minimum} characters", rule="min_length"
        )
    if len(value) > maximum:
        raise ValidationError(
            f"{label} must not exceed {maximum} characters", rule="max_length"
        )


def slugify(name: str) -> str:
    slug = _SLUG_INVALID.sub("-", name)
    slug = _HYPHENS.sub("-", slug)
    slug = slug.lower().strip("-")
    if not slug:
        raise SlugGenerationError(name)
    return slug


@dataclass(frozen=True)
class Name:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError("Name must be a string", rule="type")
        object.__setattr__(self, "value", self.value.strip())
        _check_length("Name", self.value, 2, 255)

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Email:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value:
            raise ValidationError("Invalid email address format", rule="format")
        if len(self.value) > 254:
            raise ValidationError(
                "Email address exceeds maximum length of 254 characters", rule="max_length"
            )
        try:
            result = validate_email(self.value, check_deliverability=False)
        except EmailNotValidError:
            raise ValidationError("Invalid email address format", rule="format")
        object.__setattr__(self, "value", result.normalized)

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class WorkspaceName:
    value: str
    slug: str = field(init=False)

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError("Workspace name must be a string", rule="type")
        _check_length("Workspace name", self.value, 3, 100)
        object.__setattr__(self, "slug", slugify(self.value))

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class ProjectName:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError("Project name must be a string", rule="type")
        object.__setattr__(self, "value", self.value.strip())
        _check_length("Project name", self.value, 3, 100)

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class TaskTitle:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError("Task title must be a string", rule="type")
        object.__setattr__(self, "value", self.value.strip())
        _check_length("Task title", self.value, 3, 255)

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class CommentContent:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError("Comment must be a string", rule="type")
        object.__setattr__(self, "value", self.value.strip())
        _check_length("Comment", self.value, 3, 2000)

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class FileName:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value.strip():
            raise ValidationError("Invalid file name", rule="required")
        if len(self.value) > 255:
            raise ValidationError("File name must not exceed 255 characters", rule="max_length")

    @property
    def extension(self) -> str:
        if "." not in self.value:
            return ""
        return self.value.rsplit(".", 1)[-1].lower()

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class FilePath:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value:
            raise ValidationError("Invalid file path", rule="required")
        if not self.value.startswith(ATTACHMENT_NAMESPACE):
            raise ValidationError(
                f"File path must start with '{ATTACHMENT_NAMESPACE}'", rule="prefix"
            )
        if ".." in self.value.split("/"):
            raise ValidationError("File path must not traverse directories", rule="traversal")

    def __str__(self):
        return self.value
