"""Tests for .swiftinterface target rewriting."""

from pathlib import Path

from xcconverter import patch_swiftinterfaces

FLAGS = "// swift-module-flags: -target {} -enable-library-evolution -module-name Foo\n"


def write_interface(root: Path, name: str, target: str) -> Path:
    path = root / "Foo.framework" / "Modules" / "Foo.swiftmodule" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(FLAGS.format(target) + "public func foo()\n")
    return path


class TestPatchSwiftInterfaces:
    """Tests for patch_swiftinterfaces()."""

    def test_device_target_rewritten(self, tmp_path: Path):
        path = write_interface(tmp_path, "arm64-apple-ios.swiftinterface", "arm64-apple-ios12.0")
        assert patch_swiftinterfaces(tmp_path) == [path]
        assert "-target arm64-apple-ios12.0-simulator -enable" in path.read_text()
        assert path.read_text().endswith("public func foo()\n")

    def test_patch_version(self, tmp_path: Path):
        path = write_interface(
            tmp_path, "arm64.swiftinterface", "arm64-apple-ios13.4.1"
        )
        patch_swiftinterfaces(tmp_path)
        assert "arm64-apple-ios13.4.1-simulator " in path.read_text()

    def test_private_interface(self, tmp_path: Path):
        """Test that .private.swiftinterface files are covered too."""
        path = write_interface(
            tmp_path, "arm64-apple-ios.private.swiftinterface", "arm64-apple-ios14.0"
        )
        assert patch_swiftinterfaces(tmp_path) == [path]

    def test_idempotent(self, tmp_path: Path):
        """Test a second run leaves simulator targets alone."""
        path = write_interface(tmp_path, "arm64-apple-ios.swiftinterface", "arm64-apple-ios12.0")
        patch_swiftinterfaces(tmp_path)
        text = path.read_text()
        assert patch_swiftinterfaces(tmp_path) == []
        assert path.read_text() == text

    def test_other_architectures_ignored(self, tmp_path: Path):
        path = write_interface(
            tmp_path, "x86_64-apple-ios-simulator.swiftinterface", "x86_64-apple-ios12.0"
        )
        before = path.read_text()
        assert patch_swiftinterfaces(tmp_path) == []
        assert path.read_text() == before

    def test_no_interfaces(self, tmp_path: Path):
        assert patch_swiftinterfaces(tmp_path) == []

    def test_crlf_preserved(self, tmp_path: Path):
        """Test that line endings and other bytes are kept exactly."""
        path = tmp_path / "arm64-apple-ios.swiftinterface"
        path.write_bytes(
            b"// x\r\n// -target arm64-apple-ios13.0 -foo\r\nimport Swift\r\n"
        )
        assert patch_swiftinterfaces(tmp_path) == [path]
        assert path.read_bytes() == (
            b"// x\r\n// -target arm64-apple-ios13.0-simulator -foo\r\nimport Swift\r\n"
        )

    def test_non_utf8_content(self, tmp_path: Path):
        """Test that bytes outside UTF-8 do not stop the rewrite."""
        path = tmp_path / "arm64.swiftinterface"
        path.write_bytes(b"\xff\xfe // -target arm64-apple-ios12.0 -x\n")
        assert patch_swiftinterfaces(tmp_path) == [path]
        assert path.read_bytes() == b"\xff\xfe // -target arm64-apple-ios12.0-simulator -x\n"
