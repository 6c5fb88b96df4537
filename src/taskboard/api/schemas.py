from __future__ import annotations

import json
import re
from typing import Annotated, Any, TypeVar

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError

from taskboard.tasks.store import TaskStatus

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

M = TypeVar("M", bound=BaseModel)


def _check_email(v: str) -> str:
    v = str(v).strip().lower()
    if not _EMAIL_RE.match(v):
        raise ValueError("Invalid email")
    return v


Email = Annotated[str, AfterValidator(_check_email)]


class RegisterIn(BaseModel):
    email: Email
    password: str = Field(min_length=6)


class LoginIn(BaseModel):
    email: Email
    password: str


class TaskCreateIn(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None


class TaskUpdateIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    status: TaskStatus | None = None


def error_messages(ex: ValidationError | RequestValidationError) -> list[str]:
    out: list[str] = []
    for err in ex.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = str(err.get("msg") or "invalid")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def validation_failed(errors: list[str]) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": "Validation failed", "errors": errors})


async def parse_body(request: Request, model: type[M]) -> M:
    """Parse the JSON body into `model`; any shape problem is a 400."""
    try:
        raw: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise validation_failed(["Invalid JSON"]) from None
    if not isinstance(raw, dict):
        raise validation_failed(["Expected a JSON object"])
    try:
        return model.model_validate(raw)
    except ValidationError as ex:
        raise validation_failed(error_messages(ex)) from None
