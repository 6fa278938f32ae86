"""Generated file Pydantic v2 models with path and content rules."""
from __future__ import annotations

import re

from pydantic import BaseModel, field_validator
from pydantic_core import PydanticCustomError

MAX_PATH_LENGTH = 500

_ALNUM_START = re.compile(r"^[a-zA-Z0-9]")
_SEGMENT_SPLIT = re.compile(r"[/\\]")


class GeneratedFile(BaseModel):
    """One file emitted by the implementation stage."""
    path: str
    content: str

    model_config = {"frozen": True}

    @field_validator("path")
    @classmethod
    def _check_path(cls, value: str) -> str:
        if not value:
            raise PydanticCustomError("path_empty", "Must not be empty")
        if len(value) > MAX_PATH_LENGTH:
            raise PydanticCustomError(
                "path_too_long",
                "Must be at most {max_length} characters",
                {"max_length": MAX_PATH_LENGTH},
            )
        if not _ALNUM_START.match(value):
            raise PydanticCustomError("path_start", "Must start with alphanumeric")
        segments = _SEGMENT_SPLIT.split(value)
        if ".." in segments:
            raise PydanticCustomError("path_traversal", 'Must not contain ".."')
        if "" in segments or "." in segments:
            raise PydanticCustomError("path_segment", 'Must not contain empty or "." segments')
        return value

    @field_validator("content")
    @classmethod
    def _check_content(cls, value: str) -> str:
        if not value:
            raise PydanticCustomError("content_empty", "Must not be empty")
        return value


def normalise_path(path: str) -> str:
    """Storage form of *path*: both separators become ``/``, empty segments dropped."""
    return "/".join(segment for segment in _SEGMENT_SPLIT.split(path) if segment)


def file_set_issues(paths: list[str]) -> list[str]:
    """Set-level rules over the paths of one file array.

    Paths are compared in storage form, so ``src/a.ts`` and ``src\\a.ts``
    are the same file, and a file named ``src`` cannot sit beside
    ``src/a.ts``.
    """
    if not paths:
        return ["At least one file required"]
    issues = []
    normalised = [normalise_path(p) for p in paths]
    if len(set(normalised)) != len(normalised):
        issues.append("No duplicate paths")
    present = set(normalised)
    for path in dict.fromkeys(normalised):
        segments = path.split("/")
        for depth in range(1, len(segments)):
            parent = "/".join(segments[:depth])
            if parent in present:
                issues.append(f'Path "{parent}" is also used as a directory by "{path}"')
    return issues


class GeneratedFileSet(BaseModel):
    """The complete output of one implementation attempt."""
    files: list[GeneratedFile]

    @field_validator("files")
    @classmethod
    def _check_files(cls, value: list[GeneratedFile]) -> list[GeneratedFile]:
        issues = file_set_issues([f.path for f in value])
        if issues:
            raise PydanticCustomError("files_set", "{issues}", {"issues": "; ".join(issues)})
        return value
