"""Condition evaluation against a resolved image."""

from __future__ import annotations

import functools
import re
import time
from contextlib import ExitStack
from typing import TYPE_CHECKING, Callable, Iterable

from oci_structure.core.env_audit import audit_env_value, split_env
from oci_structure.core.layers import materialize
from oci_structure.models.common import format_mode
from oci_structure.models.conditions import (
    Condition,
    ConditionSet,
    DirCondition,
    EnvCondition,
    FileCondition,
    FileSpec,
    PermissionCondition,
    compile_content_regex,
)
from oci_structure.models.result import CheckResult, Violation
from oci_structure.utils.errors import (
    ConditionsNotMetError,
    FilesystemError,
    LayerError,
    StructureError,
)
from oci_structure.utils.logging import get_logger_with_context

if TYPE_CHECKING:
    from oci_structure.core.image import Image
    from oci_structure.core.tarfs import TarFilesystem

MAX_REGEX_BYTES = 1 << 20
"""Files larger than this are not read for regex matching."""

BINARY_SNIFF_BYTES = 8 << 10
"""A NUL byte within this many leading bytes marks a file as binary."""

_LOOKUP_ERRORS = (OSError, FilesystemError)


@functools.lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[bytes]:
    return compile_content_regex(pattern)


def check_env(condition: EnvCondition, env: list[str]) -> list[Violation]:
    """Compare wanted env values with the image config and audit PATH-like values.

    The audit runs on every wanted value whether or not it matched, so a
    bad value the operator asserts is still flagged.
    """
    actual = split_env(env)
    violations = []
    for name, want in condition.want.items():
        got = actual.get(name, "")
        if got != want:
            violations.append(
                Violation(
                    condition=condition.kind,
                    subject=name,
                    message=f"env {name} does not match {want!r} (got {got!r})",
                )
            )
        for problem in audit_env_value(name, want):
            violations.append(Violation(condition=condition.kind, subject=name, message=problem))
    return violations


def check_files(condition: FileCondition, fs: TarFilesystem) -> list[Violation]:
    """Check existence, content and mode of each wanted file."""
    violations = []
    for path, spec in condition.want.items():
        violations.extend(_check_file(path, spec, fs))
    return violations


def _check_file(path: str, spec: FileSpec, fs: TarFilesystem) -> list[Violation]:
    def violation(message: str) -> Violation:
        return Violation(condition="files", subject=path, message=message)

    try:
        fh = fs.open(path)
    except (FileNotFoundError, NotADirectoryError):
        # Optional files exist only in some variants of an image family.
        if spec.optional:
            return []
        return [violation(f"file {path} not found")]
    except _LOOKUP_ERRORS as e:
        return [violation(f"opening {path}: {e}")]

    violations = []
    with fh:
        if spec.regex:
            message = _match_content(path, spec.regex, fs, fh)
            if message:
                violations.append(violation(message))

    if spec.mode is not None:
        try:
            entry = fs.stat(path)
        except _LOOKUP_ERRORS as e:
            violations.append(violation(f"stat {path}: {e}"))
        else:
            if entry.perm != spec.mode:
                violations.append(
                    violation(
                        f"file {path} mode does not match {format_mode(spec.mode)} "
                        f"(got {format_mode(entry.perm)})"
                    )
                )
    return violations


def _match_content(path: str, regex: str, fs: TarFilesystem, fh) -> str | None:
    try:
        size = fs.stat(path).size
        if size > MAX_REGEX_BYTES:
            return f"file {path} too large to match regex (max {MAX_REGEX_BYTES} bytes)"
        data = fh.read(MAX_REGEX_BYTES)
    except _LOOKUP_ERRORS as e:
        return f"reading {path}: {e}"

    if b"\x00" in data[:BINARY_SNIFF_BYTES]:
        return f"file {path} contains binary data"
    if _compile(regex).search(data) is None:
        content = data.decode("utf-8", errors="replace")
        return f"file {path} does not match regexp {regex!r}, got:\n{content}"
    return None


def check_dirs(condition: DirCondition, fs: TarFilesystem) -> list[Violation]:
    """Check directory modes, or the modes of everything below a directory."""
    violations = []
    for path, spec in condition.want.items():
        if not spec.recursive:
            message = _check_single_dir(path, spec.mode, fs)
            if message:
                violations.append(Violation(condition=condition.kind, subject=path, message=message))
            continue

        try:
            for found, entry in fs.walk(path):
                # Symlink modes carry no permission information.
                if entry.is_symlink:
                    continue
                if spec.files_only and not entry.is_regular:
                    continue
                if entry.perm != spec.mode:
                    violations.append(
                        Violation(
                            condition=condition.kind,
                            subject=found,
                            message=(
                                f"file {found} mode does not match {format_mode(spec.mode)} "
                                f"(got {format_mode(entry.perm)})"
                            ),
                        )
                    )
        except _LOOKUP_ERRORS as e:
            violations.append(
                Violation(condition=condition.kind, subject=path, message=f"walking {path}: {e}")
            )
    return violations


def _check_single_dir(path: str, mode: int, fs: TarFilesystem) -> str | None:
    try:
        entry = fs.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return f"directory {path} not found"
    except _LOOKUP_ERRORS as e:
        return f"stat {path}: {e}"
    if not entry.is_dir:
        return f"{path} is not a directory"
    if entry.perm != mode:
        return f"directory {path} mode does not match {format_mode(mode)} (got {format_mode(entry.perm)})"
    return None


def check_permissions(condition: PermissionCondition, fs: TarFilesystem) -> list[Violation]:
    """Report every node whose permissions equal a blocked value."""
    violations = []
    for root, spec in condition.want.items():
        try:
            for found, entry in fs.walk(root):
                if entry.is_symlink:
                    continue
                if entry.perm != spec.block or spec.is_overridden(found):
                    continue
                violations.append(
                    Violation(
                        condition=condition.kind,
                        subject=found,
                        message=(
                            f"file {found} mode matches blocked permission {format_mode(spec.block)} "
                            f"(got {format_mode(entry.perm)})"
                        ),
                    )
                )
        except _LOOKUP_ERRORS as e:
            violations.append(
                Violation(condition=condition.kind, subject=root, message=f"walking {root}: {e}")
            )
    return violations


Handler = Callable[[Condition, "Image", "TarFilesystem | None"], list[Violation]]


class ConditionChecker:
    """Evaluates conditions against an image and collects every violation.

    The image filesystem is materialized at most once per evaluation and
    shared by all file, directory and permission conditions. Environment
    conditions only read the image config. Every condition runs even when
    earlier ones fail.

    Example:
        checker = ConditionChecker(timeout=300)
        conditions = ConditionSet(conditions=[
            EnvCondition(want={"PATH": "/usr/bin:/bin"}),
            FileCondition(want={"/etc/passwd": FileSpec(regex="nonroot")}),
        ])

        result = checker.evaluate(image, conditions)
        for violation in result.violations:
            print(violation.message)

        # or raise ConditionsNotMetError with the joined report
        checker.check(image, conditions)
    """

    def __init__(self, spool_dir: str | None = None, timeout: float | None = None) -> None:
        """Initialize the checker.

        Args:
            spool_dir: Directory for the scratch file holding the flattened filesystem
            timeout: Seconds the whole evaluation may take
        """
        self._spool_dir = spool_dir
        self._timeout = timeout
        self._handlers: dict[str, Handler] = {
            "env": lambda c, image, fs: check_env(c, image.config_env()),  # type: ignore[arg-type]
            "files": lambda c, image, fs: check_files(c, fs),  # type: ignore[arg-type]
            "dirs": lambda c, image, fs: check_dirs(c, fs),  # type: ignore[arg-type]
            "permissions": lambda c, image, fs: check_permissions(c, fs),  # type: ignore[arg-type]
        }

    def evaluate(self, image: "Image", conditions: ConditionSet | Iterable[Condition]) -> CheckResult:
        """Run every condition and collect the violations.

        Args:
            image: Resolved single-platform image
            conditions: Conditions to evaluate

        Returns:
            CheckResult with all violations

        Raises:
            StructureError: When the image filesystem cannot be materialized
        """
        if not isinstance(conditions, ConditionSet):
            conditions = ConditionSet(conditions=list(conditions))

        reference = getattr(image, "reference", None) or repr(image)
        logger = get_logger_with_context("check", image=reference)
        deadline = time.monotonic() + self._timeout if self._timeout else None

        violations: list[Violation] = []
        with ExitStack() as stack:
            fs = None
            if conditions.needs_filesystem:
                fs = stack.enter_context(
                    materialize(self._layers(image), spool_dir=self._spool_dir, deadline=deadline)
                )
            for condition in conditions.conditions:
                found = self._handlers[condition.kind](condition, image, fs)
                logger.debug("%s condition: %d violation(s)", condition.kind, len(found))
                violations.extend(found)

        logger.debug("evaluated %d condition(s): %d violation(s)", len(conditions), len(violations))
        return CheckResult(image_reference=reference, violations=violations)

    def check(self, image: "Image", conditions: ConditionSet | Iterable[Condition]) -> None:
        """Evaluate and raise if anything is violated.

        Raises:
            ConditionsNotMetError: Carrying every violation found
            StructureError: When the image filesystem cannot be materialized
        """
        result = self.evaluate(image, conditions)
        if not result.passed:
            raise ConditionsNotMetError(result.violations, reference=result.image_reference)

    @staticmethod
    def _layers(image: "Image") -> list:
        try:
            return image.layers()
        except StructureError:
            raise
        except Exception as e:
            raise LayerError(f"listing layers: {e}") from e


def check_image(
    image: "Image",
    conditions: ConditionSet | Iterable[Condition],
    spool_dir: str | None = None,
    timeout: float | None = None,
) -> None:
    """Check ``image`` against ``conditions``; silence means compliance.

    Raises:
        ConditionsNotMetError: If any condition is violated
    """
    ConditionChecker(spool_dir=spool_dir, timeout=timeout).check(image, conditions)
