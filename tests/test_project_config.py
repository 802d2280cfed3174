"""
Test project configuration and setup validity.
Guards against malformed packaging metadata and undeclared dependencies.
"""

import ast
import sys
from pathlib import Path

import pytest
import toml

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE_DIR = PROJECT_ROOT / "src" / "auroralens"

# Import name -> distribution name, where they differ
DISTRIBUTION_NAMES = {"toml": "toml"}


@pytest.fixture(scope="module")
def pyproject():
    with open(PROJECT_ROOT / "pyproject.toml") as f:
        return toml.load(f)


def _requirement_name(requirement: str) -> str:
    for sep in ("[", ">", "<", "=", "~", "!", " "):
        requirement = requirement.split(sep)[0]
    return requirement.strip().lower()


class TestProjectConfiguration:
    """Test that project configuration files are valid and consistent."""

    def test_pyproject_toml_valid(self):
        """Should parse pyproject.toml as TOML with a project table."""
        try:
            with open(PROJECT_ROOT / "pyproject.toml") as f:
                config = toml.load(f)
        except toml.TomlDecodeError as e:
            pytest.fail(f"pyproject.toml is not valid TOML: {e}")

        assert "project" in config, "Missing [project] section"
        assert "build-system" in config, "Missing [build-system] section"
        assert isinstance(
            config["project"]["dependencies"], list
        ), "project.dependencies must be a list, not a dict"

    def test_dependencies_format(self, pyproject):
        """Should declare every dependency with a version specifier."""
        for dep in pyproject["project"]["dependencies"]:
            assert isinstance(dep, str), f"Dependency {dep} must be a string"
            assert (
                ">" in dep or "=" in dep
            ), f"Dependency {dep} doesn't look like a valid requirement specifier"

    def test_test_extra_declares_pytest(self, pyproject):
        """Should list the test tooling in the test extra."""
        extra = [_requirement_name(d) for d in pyproject["project"]["optional-dependencies"]["test"]]
        assert "pytest" in extra
        assert "toml" in extra

    def test_no_duplicate_sections(self):
        """Should not repeat a TOML section header."""
        content = (PROJECT_ROOT / "pyproject.toml").read_text()

        sections = []
        for line in content.split("\n"):
            if line.strip().startswith("[") and line.strip().endswith("]"):
                section = line.strip()
                if section in sections:
                    pytest.fail(f"Duplicate section found: {section}")
                sections.append(section)

    def test_python_version_consistency(self, pyproject):
        """Should require a Python version the test interpreter satisfies."""
        requires_python = pyproject["project"].get("requires-python", "")
        assert ">=" in requires_python, "requires-python should use >= specifier"

        minimum = tuple(int(p) for p in requires_python.replace(">=", "").strip().split("."))
        assert sys.version_info[: len(minimum)] >= minimum

    def test_package_name_valid(self, pyproject):
        """Should use a valid distribution name."""
        name = pyproject["project"]["name"]
        assert name.replace("-", "_").replace("_", "").isalnum()
        assert not name[0].isdigit()

    def test_third_party_imports_are_declared(self, pyproject):
        """Should declare every third-party package imported by the library."""
        declared = {_requirement_name(d) for d in pyproject["project"]["dependencies"]}
        stdlib = set(sys.stdlib_module_names)

        imported = set()
        for path in PACKAGE_DIR.rglob("*.py"):
            tree = ast.parse(path.read_text())
            for node in ast.walk(tree):
                if isinstance(node, ast.Import):
                    imported.update(alias.name.split(".")[0] for alias in node.names)
                elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
                    imported.add(node.module.split(".")[0])

        third_party = {m for m in imported if m not in stdlib and m != "auroralens"}
        missing = {m for m in third_party if DISTRIBUTION_NAMES.get(m, m) not in declared}
        assert not missing, f"Imported but not declared: {sorted(missing)}"


class TestProjectImports:
    """Test that the package can be imported without errors."""

    def test_main_package_importable(self):
        """Should import the main package and expose its version."""
        import auroralens

        assert auroralens.__version__

    @pytest.mark.parametrize(
        "module_name",
        [
            "auroralens.catalog",
            "auroralens.evaluation",
            "auroralens.load",
            "auroralens.metrics",
            "auroralens.pricing",
            "auroralens.sources",
            "auroralens.stats",
            "auroralens.utils",
            "auroralens.workload",
        ],
    )
    def test_submodules_importable(self, module_name):
        """Should import every subpackage."""
        __import__(module_name)
