"""Validation of ``write_files`` tool input against the generated-file rules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from src.shared.models.files import GeneratedFile, GeneratedFileSet, file_set_issues


@dataclass(frozen=True)
class FileSetValidation:
    """Outcome of validating one attempt's file array."""

    files: tuple[GeneratedFile, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def format_validation_errors(exc: ValidationError, prefix: tuple[Any, ...] = ()) -> list[str]:
    """Render each issue as ``<field path>: <message>``."""
    return [
        f"{'.'.join(str(part) for part in (*prefix, *err['loc']))}: {err['msg']}"
        for err in exc.errors()
    ]


def validate_file_set(raw_files: Any) -> FileSetValidation:
    """Validate the whole array: every file, at least one, no colliding paths.

    Item rules and set rules are checked independently, so one message
    lists every violation, e.g.
    ``files.0.path: Must start with alphanumeric; files: No duplicate paths``.
    """
    if not isinstance(raw_files, list):
        try:
            GeneratedFileSet.model_validate({"files": raw_files})
        except ValidationError as exc:
            return FileSetValidation(error="; ".join(format_validation_errors(exc)))

    issues: list[str] = []
    files: list[GeneratedFile] = []
    for index, raw in enumerate(raw_files):
        try:
            files.append(GeneratedFile.model_validate(raw))
        except ValidationError as exc:
            issues.extend(format_validation_errors(exc, ("files", index)))

    paths = [
        raw["path"] for raw in raw_files
        if isinstance(raw, dict) and isinstance(raw.get("path"), str)
    ]
    if paths or not raw_files:
        issues.extend(f"files: {issue}" for issue in file_set_issues(paths))

    if issues:
        return FileSetValidation(error="; ".join(issues))
    return FileSetValidation(files=tuple(files))


def salvage_valid_files(raw_files: Any) -> tuple[GeneratedFile, ...]:
    """Keep each individually valid file; drop invalid ones and colliding paths.

    Used for truncated output, where the array as a whole cannot be
    trusted but each complete entry can still be checked on its own.
    A file whose path collides with one already kept is dropped.
    """
    if not isinstance(raw_files, list):
        return ()
    kept: list[GeneratedFile] = []
    for raw in raw_files:
        try:
            file = GeneratedFile.model_validate(raw)
        except ValidationError:
            continue
        if file_set_issues([*(f.path for f in kept), file.path]):
            continue
        kept.append(file)
    return tuple(kept)
