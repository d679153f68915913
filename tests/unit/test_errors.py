"""Unit tests for the errors module."""

import pytest

from oci_structure.models.result import Violation
from oci_structure.registry.base import (
    DigestMismatchError,
    RegistryAuthError,
    RegistryError,
    RegistryNotFoundError,
)
from oci_structure.utils.errors import (
    ConditionsNotMetError,
    ConfigurationError,
    EvaluationTimeoutError,
    FilesystemError,
    InvalidPathError,
    LayerError,
    SpoolError,
    StructureError,
    ValidationError,
    validate_env_var_name,
)


class TestStructureError:
    """Tests for base StructureError."""

    def test_basic_error(self):
        """Test basic error creation."""
        error = StructureError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.code == "UNKNOWN_ERROR"
        assert error.details == {}

    def test_to_audit_error(self):
        """Test conversion to AuditError model."""
        error = StructureError("Test error", code="TEST_ERROR", details={"key": "value"})
        audit_error = error.to_audit_error()

        assert audit_error.code == "TEST_ERROR"
        assert audit_error.message == "Test error"
        assert audit_error.details == {"key": "value"}
        assert str(audit_error) == "[TEST_ERROR] Test error"


class TestErrorCodes:
    """Tests for error subclasses."""

    @pytest.mark.parametrize(
        "error,code",
        [
            (ValidationError("bad"), "VALIDATION_ERROR"),
            (ConfigurationError("bad"), "CONFIG_ERROR"),
            (LayerError("bad"), "LAYER_ERROR"),
            (SpoolError("bad"), "SPOOL_ERROR"),
            (FilesystemError("bad"), "FILESYSTEM_ERROR"),
            (EvaluationTimeoutError(), "TIMEOUT_ERROR"),
            (RegistryError("bad"), "REGISTRY_ERROR"),
            (RegistryAuthError("bad"), "AUTH_ERROR"),
            (RegistryNotFoundError("example.com/app:1"), "NOT_FOUND"),
        ],
    )
    def test_code(self, error, code):
        """Test that each error carries its code and the common base."""
        assert error.code == code
        assert isinstance(error, StructureError)

    def test_details(self):
        """Test optional detail fields."""
        assert ValidationError("bad", field="mode").details == {"field": "mode"}
        assert ConfigurationError("bad", config_key="check.timeout").details == {
            "config_key": "check.timeout"
        }
        assert LayerError("bad", layer=0).details == {"layer": 0}
        assert FilesystemError("bad", path="/etc").details == {"path": "/etc"}

    def test_invalid_path(self):
        """Test InvalidPathError message and base class."""
        error = InvalidPathError("etc/passwd")
        assert isinstance(error, ValidationError)
        assert "etc/passwd" in str(error)
        assert error.path == "etc/passwd"

    def test_not_found_message(self):
        """Test that the reference is in the message."""
        assert str(RegistryNotFoundError("example.com/app:1")) == "Not found: example.com/app:1"

    def test_digest_mismatch(self):
        """Test that both digests are reported."""
        error = DigestMismatchError("sha256:aaa", "sha256:bbb")
        assert error.code == "DIGEST_MISMATCH"
        assert "sha256:aaa" in str(error)
        assert "sha256:bbb" in str(error)


class TestConditionsNotMetError:
    """Tests for ConditionsNotMetError."""

    def test_report(self):
        """Test that the message joins violations by newline."""
        violations = [
            Violation(condition="files", subject="/a", message="file /a not found"),
            Violation(condition="env", subject="A", message="env A does not match 'b' (got 'c')"),
        ]
        error = ConditionsNotMetError(violations, reference="example.com/app:1")
        assert str(error) == "file /a not found\nenv A does not match 'b' (got 'c')"
        assert error.violations == violations
        assert error.details == {"count": 2, "reference": "example.com/app:1"}
        assert error.code == "CONDITIONS_NOT_MET"


class TestValidateEnvVarName:
    """Tests for validate_env_var_name."""

    def test_valid(self):
        """Test valid names."""
        validate_env_var_name("PATH")
        validate_env_var_name("lower_case")

    @pytest.mark.parametrize("name", ["", "A=B"])
    def test_invalid(self, name):
        """Test invalid names."""
        with pytest.raises(ValidationError):
            validate_env_var_name(name)
