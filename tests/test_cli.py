"""Tests for the command-line interface."""

import subprocess
import sys
from pathlib import Path

import pytest

from binaries import make_framework

ROOT = Path(__file__).resolve().parent.parent


def xcconverter(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "xcconverter", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        env={"PYTHONPATH": str(ROOT), "PATH": ""},
    )


class TestCLI:
    """Tests for top-level options."""

    def test_help(self):
        result = xcconverter("--help")
        assert result.returncode == 0
        assert "convert" in result.stdout
        assert "inspect" in result.stdout

    def test_version(self):
        result = xcconverter("--version")
        assert result.returncode == 0
        assert "xcconverter" in result.stdout

    def test_command_required(self):
        result = xcconverter()
        assert result.returncode != 0


class TestCLIConvert:
    """Tests for the 'convert' subcommand."""

    def test_help(self):
        result = xcconverter("convert", "--help")
        assert result.returncode == 0
        for option in ("--linkage", "--template", "--jobs", "--backend", "--dry-run"):
            assert option in result.stdout

    def test_requires_framework(self):
        result = xcconverter("convert")
        assert result.returncode != 0
        assert "required" in result.stderr.lower() or "arguments" in result.stderr.lower()

    def test_nonexistent_framework(self, tmp_path: Path):
        result = xcconverter("convert", str(tmp_path / "Nope.framework"), cwd=tmp_path)
        assert result.returncode == 1
        assert "does not exist" in result.stderr

    def test_missing_framework_stops_run(self, dynamic_framework: Path, tmp_path: Path):
        """Test one missing path fails the run before anything is converted."""
        result = xcconverter(
            "convert", str(tmp_path / "Gone.framework"), str(dynamic_framework), cwd=tmp_path
        )
        assert result.returncode == 1
        assert "Gone.framework" in result.stderr
        assert dynamic_framework.is_dir()
        assert not dynamic_framework.with_suffix(".xcframework").exists()

    def test_help_documents_missing_paths(self):
        result = xcconverter("convert", "--help")
        assert "Every FRAMEWORK must exist" in result.stdout

    def test_invalid_linkage(self, dynamic_framework: Path):
        result = xcconverter("convert", str(dynamic_framework), "--linkage", "bundle")
        assert result.returncode != 0

    def test_convert(self, dynamic_framework: Path, tmp_path: Path):
        result = xcconverter("convert", str(dynamic_framework), "--no-color", cwd=tmp_path)
        assert result.returncode == 0, result.stderr
        assert dynamic_framework.with_suffix(".xcframework").is_dir()
        assert not dynamic_framework.exists()

    def test_dry_run(self, dynamic_framework: Path, tmp_path: Path):
        result = xcconverter(
            "convert", str(dynamic_framework), "--dry-run", "--no-color", cwd=tmp_path
        )
        assert result.returncode == 0, result.stderr
        assert "[DRY RUN]" in result.stderr
        assert dynamic_framework.exists()
        assert not dynamic_framework.with_suffix(".xcframework").exists()

    def test_failure_exit_code(self, tmp_path: Path):
        """Test a failed conversion exits with status 1 and names the slice."""
        framework = make_framework(tmp_path, "Junk", b"\x00" * 64)
        result = xcconverter("convert", str(framework), "--no-color", cwd=tmp_path)
        assert result.returncode == 1
        assert "Junk.framework" in result.stderr
        assert framework.exists()

    def test_config_file(self, dynamic_framework: Path, tmp_path: Path):
        """Test options are read from the given config file."""
        config = tmp_path / "conf.toml"
        config.write_text('[convert]\nbackend = "bogus"\n')
        result = xcconverter(
            "convert", str(dynamic_framework), "-c", str(config), cwd=tmp_path
        )
        assert result.returncode == 1
        assert "bogus" in result.stderr
        assert dynamic_framework.exists()


class TestCLIInspect:
    """Tests for the 'inspect' subcommand."""

    def test_inspect(self, dynamic_framework: Path, tmp_path: Path):
        assert xcconverter("convert", str(dynamic_framework), cwd=tmp_path).returncode == 0
        result = xcconverter(
            "inspect",
            str(dynamic_framework.with_suffix(".xcframework")),
            "--no-color",
            cwd=tmp_path,
        )
        assert result.returncode == 0, result.stderr
        assert "ios-arm64_x86_64-simulator" in result.stderr
        assert "linkage=dynamic" in result.stderr
        assert "arm64=ios-simulator 13.0" in result.stderr
        assert "arm64=ios 13.0" in result.stderr
        assert "MISMATCH" not in result.stderr

    @pytest.mark.parametrize("name", ["Missing.xcframework"])
    def test_inspect_missing(self, tmp_path: Path, name: str):
        result = xcconverter("inspect", str(tmp_path / name), cwd=tmp_path)
        assert result.returncode == 1
        assert "Info.plist" in result.stderr
