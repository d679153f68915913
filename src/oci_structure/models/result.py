"""Evaluation result models."""

from pydantic import BaseModel, Field


class Violation(BaseModel):
    """A single failed assertion."""

    model_config = {"frozen": True}

    condition: str = Field(description="Kind of the condition that failed (env, files, ...)")
    subject: str = Field(description="Env var name or path the violation is about")
    message: str = Field(description="Human-readable violation text")

    def __str__(self) -> str:
        return self.message


class CheckResult(BaseModel):
    """Every violation found in one evaluation.

    Violations are kept in the order they were found, which callers
    should not depend on.
    """

    model_config = {"frozen": True}

    image_reference: str = Field(description="Image that was checked")
    violations: list[Violation] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        """True when no condition was violated."""
        return not self.violations

    def violations_for(self, subject: str) -> list[Violation]:
        """Get violations about one env var or path."""
        return [v for v in self.violations if v.subject == subject]

    def by_condition(self) -> dict[str, list[Violation]]:
        """Group violations by condition kind."""
        grouped: dict[str, list[Violation]] = {}
        for v in self.violations:
            grouped.setdefault(v.condition, []).append(v)
        return grouped

    def report(self) -> str:
        """Newline-joined violation messages; empty when passed."""
        return "\n".join(v.message for v in self.violations)
