"""Validation issue and result models."""

from __future__ import annotations

from pydantic import BaseModel, Field

AUTO_FIXABLE_CODES = frozenset(
    {
        "codex_frontmatter_invalid_yaml",
        "missing_frontmatter_name",
        "missing_frontmatter_description",
        "frontmatter_name_mismatch_skill_key",
    }
)


class ValidationIssue(BaseModel):
    code: str
    message: str
    source: str | None = None
    line: int | None = None
    details: str = ""

    @property
    def auto_fixable(self) -> bool:
        return self.code in AUTO_FIXABLE_CODES

    @property
    def location(self) -> str | None:
        if self.source is None:
            return None
        return f"{self.source}:{self.line}" if self.line is not None else self.source


class ValidationResult(BaseModel):
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.issues)

    @property
    def codes(self) -> list[str]:
        return [issue.code for issue in self.issues]

    @property
    def summary_text(self) -> str:
        count = len(self.issues)
        return f"{count} {'issue' if count == 1 else 'issues'} found"
