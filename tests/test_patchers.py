"""Tests for load command rewriting and the simulator patchers."""

import struct
from pathlib import Path

import pytest

from binaries import (
    MH_DYLIB,
    STRTAB,
    TEXT,
    build_fat,
    build_image,
    build_stub,
    encode_version,
)
from xcconverter import (
    BuildVersion,
    FormatError,
    MissingLoadCommandError,
    NativeFatTool,
    PLATFORM_IOSSIMULATOR,
    UnsupportedFormatError,
    format_version,
    parse_version,
    read_build_version,
    read_version_min,
    rewrite_build_version,
)


def write(path: Path, blob: bytes) -> Path:
    path.write_bytes(blob)
    return path


class TestVersions:
    """Tests for version string encoding."""

    @pytest.mark.parametrize(
        "text,encoded",
        [("13", 0x0D0000), ("13.0", 0x0D0000), ("12.4", 0x0C0400), ("9.3.5", 0x090305)],
    )
    def test_parse(self, text: str, encoded: int):
        assert parse_version(text) == encoded

    @pytest.mark.parametrize(
        "encoded,text",
        [(0x0D0000, "13.0"), (0x0C0400, "12.4"), (0x090305, "9.3.5")],
    )
    def test_format(self, encoded: int, text: str):
        assert format_version(encoded) == text

    @pytest.mark.parametrize("text", ["", "a.b", "1.2.3.4", "1.256"])
    def test_invalid(self, text: str):
        with pytest.raises(FormatError):
            parse_version(text)


class TestReadCommands:
    """Tests for reading version commands."""

    def test_read_version_min(self, tmp_path: Path):
        path = write(
            tmp_path / "obj.o",
            build_image(minos=encode_version(12, 1), sdk=encode_version(14, 2)),
        )
        version = read_version_min(path)
        assert version.version_string == "12.1"
        assert version.sdk_string == "14.2"
        assert version.major == 12
        assert read_build_version(path) is None

    def test_missing_command(self, tmp_path: Path):
        """Test that the error names the missing command."""
        path = write(tmp_path / "obj.o", build_image(version_command=None))
        with pytest.raises(MissingLoadCommandError, match="LC_VERSION_MIN_IPHONEOS"):
            read_version_min(path)

    def test_build_version_only(self, tmp_path: Path):
        """Test that images already using LC_BUILD_VERSION are unsupported."""
        path = write(tmp_path / "obj.o", build_image(version_command="build"))
        with pytest.raises(UnsupportedFormatError, match="LC_BUILD_VERSION"):
            read_version_min(path)

    def test_fat_needs_arch(self, tmp_path: Path, dynamic_binary: bytes):
        """Test selecting an architecture of a fat file."""
        path = write(tmp_path / "Dyn", dynamic_binary)
        assert read_version_min(path, "arm64").version_string == "13.0"


class TestRewriteInPadding:
    """Tests for rewriting images that have header padding."""

    def test_dylib(self, tmp_path: Path, dylib_image: bytes):
        """Test that the command is swapped without moving any content."""
        path = write(tmp_path / "dylib", dylib_image)
        rewrite_build_version(
            path, PLATFORM_IOSSIMULATOR, encode_version(13), encode_version(14, 2)
        )

        patched = path.read_bytes()
        assert len(patched) == len(dylib_image)
        assert read_build_version(path) == BuildVersion(
            PLATFORM_IOSSIMULATOR, encode_version(13), encode_version(14, 2)
        )
        text_off = len(dylib_image) - len(TEXT) - 16 - len(STRTAB)
        assert patched[text_off:] == dylib_image[text_off:]

    def test_sizeofcmds_grows(self, tmp_path: Path, dylib_image: bytes):
        path = write(tmp_path / "dylib", dylib_image)
        rewrite_build_version(path, PLATFORM_IOSSIMULATOR, 0x0D0000, 0x0D0000)
        old = struct.unpack_from("<I", dylib_image, 20)[0]
        new = struct.unpack_from("<I", path.read_bytes(), 20)[0]
        assert new == old + 8

    def test_dylib_without_padding(self, tmp_path: Path):
        """Test that linked images are never shifted."""
        path = write(tmp_path / "dylib", build_image(filetype=MH_DYLIB))
        with pytest.raises(FormatError, match="padding"):
            rewrite_build_version(path, PLATFORM_IOSSIMULATOR, 0x0D0000, 0x0D0000)

    def test_fat_slice(self, tmp_path: Path, dynamic_binary: bytes):
        """Test rewriting one architecture inside a fat file."""
        path = write(tmp_path / "Dyn", dynamic_binary)
        rewrite_build_version(path, PLATFORM_IOSSIMULATOR, 0x0D0000, 0x0E0200, "arm64")
        assert read_build_version(path, "arm64").platform == PLATFORM_IOSSIMULATOR
        assert NativeFatTool().architectures(path) == ["armv7", "arm64", "x86_64"]


class TestRewriteObject:
    """Tests for object files without header padding."""

    @pytest.fixture
    def patched(self, tmp_path: Path) -> tuple[bytes, bytes]:
        original = build_image(minos=encode_version(12), sdk=encode_version(12))
        path = write(tmp_path / "a.o", original)
        rewrite_build_version(path, PLATFORM_IOSSIMULATOR, 0x0C0000, 0x0C0000)
        return original, path.read_bytes()

    def test_grows_by_eight(self, patched: tuple[bytes, bytes]):
        original, result = patched
        assert len(result) == len(original) + 8

    def test_content_moved(self, patched: tuple[bytes, bytes]):
        """Test that everything after the load commands moved by 8 bytes."""
        original, result = patched
        sizeofcmds = struct.unpack_from("<I", original, 20)[0]
        old_end = 32 + sizeofcmds
        assert result[old_end + 8 :] == original[old_end:]

    def test_offsets_adjusted(self, patched: tuple[bytes, bytes]):
        """Test that section and symbol table offsets follow the content."""
        original, result = patched
        # LC_SEGMENT_64 fileoff, then the section offset
        assert struct.unpack_from("<Q", result, 32 + 40)[0] == (
            struct.unpack_from("<Q", original, 32 + 40)[0] + 8
        )
        section_offset = struct.unpack_from("<I", result, 32 + 72 + 48)[0]
        assert result[section_offset : section_offset + len(TEXT)] == TEXT

        # LC_SYMTAB follows the new 24-byte version command
        symtab = 32 + 152 + 24
        cmd, _, symoff, _, stroff, strsize = struct.unpack_from(
            "<IIIIII", result, symtab
        )
        assert cmd == 0x2
        assert result[stroff : stroff + strsize] == STRTAB
        assert struct.unpack_from("<I", result, symoff)[0] == 1

    def test_build_version(self, tmp_path: Path, patched: tuple[bytes, bytes]):
        _, result = patched
        path = write(tmp_path / "check.o", result)
        assert read_build_version(path) == BuildVersion(
            PLATFORM_IOSSIMULATOR, 0x0C0000, 0x0C0000
        )

    def test_fat_object_not_shifted(self, tmp_path: Path):
        """Test that objects inside fat files must have padding."""
        path = write(
            tmp_path / "fat.o",
            build_fat([("arm64", build_image()), ("x86_64", build_stub("x86_64"))]),
        )
        with pytest.raises(FormatError, match="padding"):
            rewrite_build_version(path, PLATFORM_IOSSIMULATOR, 0x0C0000, 0x0C0000, "arm64")
