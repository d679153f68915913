"""Unit tests for loading conditions from YAML and flags."""

from pathlib import Path

import pytest
import yaml

from oci_structure.core.loader import (
    conditions_from_flags,
    dump_conditions,
    load_conditions,
    parse_conditions,
    parse_env_flag,
    parse_file_flag,
    save_conditions,
)
from oci_structure.models.conditions import (
    DirCondition,
    EnvCondition,
    FileCondition,
    PermissionCondition,
)
from oci_structure.utils.errors import ValidationError


class TestParseConditions:
    """Tests for parse_conditions."""

    def test_short_form(self):
        """Test the single-key form of each condition."""
        conditions = parse_conditions(
            {
                "conditions": [
                    {"env": {"PATH": "/bin"}},
                    {"files": {"/etc/passwd": {"regex": "root"}}},
                    {"dirs": {"/app": {"mode": "0755", "recursive": True}}},
                    {"permissions": {"/": {"block": "4755", "override": ["/usr/bin/su"]}}},
                ]
            }
        )
        env, files, dirs, perms = conditions.conditions
        assert isinstance(env, EnvCondition) and env.want == {"PATH": "/bin"}
        assert isinstance(files, FileCondition) and files.want["/etc/passwd"].regex == "root"
        assert isinstance(dirs, DirCondition) and dirs.want["/app"].mode == 0o755
        assert isinstance(perms, PermissionCondition)
        assert perms.want["/"].block == 0o4755
        assert perms.want["/"].override == ["/usr/bin/su"]

    def test_kind_form(self):
        """Test the explicit kind/want form."""
        conditions = parse_conditions([{"kind": "env", "want": {"HOME": "/root"}}])
        assert conditions.conditions[0].want == {"HOME": "/root"}

    def test_bare_file_path_means_existence(self):
        """Test that a path with no spec only requires existence."""
        conditions = parse_conditions([{"files": {"/etc/os-release": None}}])
        spec = conditions.conditions[0].want["/etc/os-release"]
        assert spec.regex is None
        assert spec.mode is None
        assert not spec.optional

    def test_env_values_stringified(self):
        """Test that YAML scalars become strings."""
        conditions = parse_conditions([{"env": {"PORT": 8080, "DEBUG": None}}])
        assert conditions.conditions[0].want == {"PORT": "8080", "DEBUG": ""}

    def test_single_condition_document(self):
        """Test a document that is one condition without a list."""
        conditions = parse_conditions({"env": {"A": "b"}})
        assert len(conditions) == 1

    def test_empty_document(self):
        """Test that an empty document has no conditions."""
        assert len(parse_conditions(None)) == 0
        assert len(parse_conditions({"conditions": []})) == 0

    def test_unknown_key(self):
        """Test that unknown condition kinds are rejected."""
        with pytest.raises(ValidationError, match="unknown key"):
            parse_conditions([{"ports": {"80": "tcp"}}])

    def test_two_kinds_in_one_item(self):
        """Test that an item must name exactly one kind."""
        with pytest.raises(ValidationError, match="exactly one"):
            parse_conditions([{"env": {"A": "b"}, "files": {"/a": None}}])

    def test_item_not_mapping(self):
        """Test that list items must be mappings."""
        with pytest.raises(ValidationError, match="#1"):
            parse_conditions(["env"])

    def test_conditions_not_list(self):
        """Test that conditions must be a list."""
        with pytest.raises(ValidationError):
            parse_conditions({"conditions": "env"})

    def test_invalid_mode(self):
        """Test that model validation errors are wrapped."""
        with pytest.raises(ValidationError, match="invalid conditions"):
            parse_conditions([{"dirs": {"/app": {"mode": "rwx"}}}])

    def test_relative_path(self):
        """Test that relative paths are rejected."""
        with pytest.raises(ValidationError):
            parse_conditions([{"files": {"etc/passwd": None}}])


class TestLoadConditions:
    """Tests for loading and saving condition files."""

    def test_load_file(self, sample_conditions_file: str):
        """Test loading the sample file."""
        conditions = load_conditions(sample_conditions_file)
        assert [c.kind for c in conditions.conditions] == ["env", "files", "dirs", "permissions"]
        assert conditions.conditions[1].want["/etc/apk/repositories"].optional

    @pytest.mark.parametrize("written", ["755", "0755", "\"755\"", "\"0755\"", "0o755"])
    def test_mode_is_octal_quoted_or_not(self, tmp_path: Path, written):
        """Test that every spelling of a mode means the same octal value."""
        path = tmp_path / "modes.yaml"
        path.write_text(
            "conditions:\n"
            f"  - files:\n      /bin/app:\n        mode: {written}\n"
            f"  - dirs:\n      /app:\n        mode: {written}\n"
            f"  - permissions:\n      /:\n        block: {written}\n"
        )
        files, dirs, permissions = load_conditions(path).conditions
        assert files.want["/bin/app"].mode == 0o755
        assert dirs.want["/app"].mode == 0o755
        assert permissions.want["/"].block == 0o755

    def test_unquoted_setuid_mode(self, tmp_path: Path):
        """Test that an unquoted four-digit mode keeps its special bits."""
        path = tmp_path / "modes.yaml"
        path.write_text("conditions:\n  - permissions:\n      /:\n        block: 4755\n")
        assert load_conditions(path).conditions[0].want["/"].block == 0o4755

    def test_unquoted_mode_not_octal(self, tmp_path: Path):
        """Test that digits 8 and 9 are rejected instead of read as decimal."""
        path = tmp_path / "modes.yaml"
        path.write_text("conditions:\n  - files:\n      /a:\n        mode: 789\n")
        with pytest.raises(ValidationError, match="mode"):
            load_conditions(path)

    def test_other_scalars_still_typed(self, tmp_path: Path):
        """Test that booleans and empty values keep their YAML meaning."""
        path = tmp_path / "flags.yaml"
        path.write_text(
            "conditions:\n"
            "  - files:\n      /etc/os-release:\n      /opt/x:\n        optional: true\n"
            "  - dirs:\n      /app:\n        mode: 700\n        recursive: true\n"
        )
        files, dirs = load_conditions(path).conditions
        assert not files.want["/etc/os-release"].optional
        assert files.want["/opt/x"].optional
        assert dirs.want["/app"].recursive

    def test_env_numbers_keep_spelling(self, tmp_path: Path):
        """Test that numeric env values are compared as written."""
        path = tmp_path / "env.yaml"
        path.write_text("conditions:\n  - env:\n      PORT: 08080\n      MASK: 0x1F\n      RATIO: 1.50\n")
        assert load_conditions(path).conditions[0].want == {"PORT": "08080", "MASK": "0x1F", "RATIO": "1.50"}

    def test_invalid_yaml(self, tmp_path: Path):
        """Test that broken YAML is a validation error."""
        path = tmp_path / "bad.yaml"
        path.write_text("conditions: [\n")
        with pytest.raises(ValidationError, match="invalid YAML"):
            load_conditions(path)

    def test_missing_file(self, tmp_path: Path):
        """Test that a missing file raises OSError."""
        with pytest.raises(OSError):
            load_conditions(tmp_path / "missing.yaml")

    def test_save_and_reload(self, sample_conditions_file: str, tmp_path: Path):
        """Test that saved conditions load back the same."""
        conditions = load_conditions(sample_conditions_file)
        out = tmp_path / "out.yaml"
        save_conditions(conditions, out)
        assert load_conditions(out) == conditions

    def test_dump_uses_octal_strings(self):
        """Test that modes are written as octal strings."""
        conditions = parse_conditions(
            [{"files": {"/a": {"mode": 0o600}, "/b": None}}, {"dirs": {"/d": {"mode": 0o1777}}}]
        )
        data = dump_conditions(conditions)
        assert data["conditions"][0] == {"files": {"/a": {"mode": "0600"}, "/b": None}}
        assert data["conditions"][1]["dirs"]["/d"]["mode"] == "1777"
        assert "0600" in yaml.dump(data)


class TestFlags:
    """Tests for CLI flag parsing."""

    def test_file_flag_with_regex(self):
        """Test PATH=REGEX."""
        path, spec = parse_file_flag("/etc/passwd=.*nonroot:.*")
        assert path == "/etc/passwd"
        assert spec.regex == ".*nonroot:.*"

    def test_file_flag_regex_with_equals(self):
        """Test that the regex may contain '='."""
        _, spec = parse_file_flag("/etc/os-release=ID=wolfi")
        assert spec.regex == "ID=wolfi"

    def test_file_flag_existence(self):
        """Test a bare path."""
        path, spec = parse_file_flag("/etc/passwd")
        assert path == "/etc/passwd"
        assert spec.regex is None

    def test_file_flag_relative(self):
        """Test that the path must be absolute."""
        with pytest.raises(ValidationError, match="absolute"):
            parse_file_flag("etc/passwd")

    def test_file_flag_bad_regex(self):
        """Test that an invalid regex is reported."""
        with pytest.raises(ValidationError, match="--file"):
            parse_file_flag("/etc/passwd=(")

    def test_env_flag(self):
        """Test KEY=VALUE, including '=' in the value."""
        assert parse_env_flag("PATH=/usr/bin:/bin") == ("PATH", "/usr/bin:/bin")
        assert parse_env_flag("OPTS=-Da=b") == ("OPTS", "-Da=b")
        assert parse_env_flag("EMPTY=") == ("EMPTY", "")

    @pytest.mark.parametrize("value", ["PATH", "=value"])
    def test_env_flag_invalid(self, value):
        """Test malformed env flags."""
        with pytest.raises(ValidationError):
            parse_env_flag(value)

    def test_conditions_from_flags(self):
        """Test building conditions from flags."""
        conditions = conditions_from_flags(["/etc/passwd=root", "/etc/group"], ["A=1"])
        files, env = conditions.conditions
        assert list(files.want) == ["/etc/passwd", "/etc/group"]
        assert env.want == {"A": "1"}

    def test_no_flags(self):
        """Test that no flags give no conditions."""
        assert len(conditions_from_flags(None, None)) == 0
