#!/usr/bin/env python3
"""xcconverter - convert device-only frameworks into XCFrameworks.

This module provides tools for:
1. Turning a fat iOS ``.framework`` (static or dynamic) into an
   ``.xcframework`` with a device slice and a simulator slice
2. Relabelling the arm64 code of the simulator slice so that it loads on
   the iOS simulator running on Apple silicon hosts
3. Pruning every slice down to the architectures its Info.plist declares

The arm64 slice of a device build is carved out of the fat binary, its
``LC_VERSION_MIN_IPHONEOS`` load command is replaced by an
``LC_BUILD_VERSION`` for the simulator platform, and it is put back. Dynamic
libraries are patched as a single image; static libraries are unpacked and
every object file in the archive is patched on its own.

Binary manipulation goes through three small tool interfaces with two
backends: ``native`` (pure Python on top of macholib) and ``xcrun``
(``lipo``, ``ar`` and ``vtool`` from the Xcode command line tools).

Usage (CLI):
    # Convert frameworks in place (Foo.framework -> Foo.xcframework)
    xcconverter convert Pods/Foo/Foo.framework Pods/Bar/Bar.framework -j 4

    # Show the slices of an existing xcframework
    xcconverter inspect Pods/Foo/Foo.xcframework

Usage (API):
    from xcconverter import FrameworkConverter, convert_framework

    # High-level: convert a single framework
    xcframework = convert_framework("Foo.framework")

    # Lower-level: choose the backend and the template
    converter = FrameworkConverter(
        "Foo.framework",
        linkage="static",
        backend="xcrun",
    )
    converter.process()
"""

import argparse
import concurrent.futures
import dataclasses
import datetime
import enum
import logging
import os
import plistlib
import re
import shutil
import struct
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from xml.parsers.expat import ExpatError

from macholib.MachO import MachO
from macholib.mach_o import (
    FAT_MAGIC,
    LC_BUILD_VERSION,
    LC_DYSYMTAB,
    LC_SEGMENT,
    LC_SEGMENT_64,
    LC_SYMTAB,
    LC_VERSION_MIN_IPHONEOS,
    MH_DYLIB,
    MH_OBJECT,
    build_version_command,
    fat_arch,
    fat_header,
    load_command,
    mach_header,
    mach_header_64,
)
from macholib.ptypes import sizeof

# ----------------------------------------------------------------------------
# Constants

__version__ = "0.1.0"

# Type aliases
Pathlike = Path | str

# Extension of the generated container
XCFRAMEWORK_EXT = ".xcframework"

# Architecture that gets relabelled for the simulator
PATCH_ARCH = "arm64"

# Tool backends
BACKEND_NATIVE = "native"
BACKEND_XCRUN = "xcrun"
BACKENDS = (BACKEND_NATIVE, BACKEND_XCRUN)
DEFAULT_BACKEND = BACKEND_NATIVE

# Environment variable names
ENV_BACKEND = "XCCONVERTER_BACKEND"

# Platform identifiers used by LC_BUILD_VERSION
PLATFORM_MACOS = 1
PLATFORM_IOS = 2
PLATFORM_TVOS = 3
PLATFORM_WATCHOS = 4
PLATFORM_MACCATALYST = 6
PLATFORM_IOSSIMULATOR = 7

PLATFORM_NAMES = {
    PLATFORM_MACOS: "macos",
    PLATFORM_IOS: "ios",
    PLATFORM_TVOS: "tvos",
    PLATFORM_WATCHOS: "watchos",
    PLATFORM_MACCATALYST: "maccatalyst",
    PLATFORM_IOSSIMULATOR: "ios-simulator",
    8: "tvos-simulator",
    9: "watchos-simulator",
}

# CPU types and subtypes (mach/machine.h)
CPU_ARCH_ABI64 = 0x01000000
CPU_TYPE_X86 = 7
CPU_TYPE_ARM = 12
CPU_TYPE_X86_64 = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM64 = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_SUBTYPE_MASK = 0x00FFFFFF

ARCH_NAMES = {
    (CPU_TYPE_X86, 3): "i386",
    (CPU_TYPE_X86_64, 3): "x86_64",
    (CPU_TYPE_X86_64, 8): "x86_64h",
    (CPU_TYPE_ARM, 6): "armv6",
    (CPU_TYPE_ARM, 9): "armv7",
    (CPU_TYPE_ARM, 11): "armv7s",
    (CPU_TYPE_ARM, 12): "armv7k",
    (CPU_TYPE_ARM64, 0): "arm64",
    (CPU_TYPE_ARM64, 1): "arm64v8",
    (CPU_TYPE_ARM64, 2): "arm64e",
}

# Mach-O magic numbers for binary validation
MACHO_MAGIC_NUMBERS = {
    b"\xfe\xed\xfa\xce",  # MH_MAGIC (32-bit)
    b"\xce\xfa\xed\xfe",  # MH_CIGAM (32-bit, reverse byte order)
    b"\xfe\xed\xfa\xcf",  # MH_MAGIC_64 (64-bit)
    b"\xcf\xfa\xed\xfe",  # MH_CIGAM_64 (64-bit, reverse byte order)
    b"\xca\xfe\xba\xbe",  # FAT_MAGIC (universal binary)
    b"\xbe\xba\xfe\xca",  # FAT_CIGAM (universal binary, reverse byte order)
}

FAT_MAGIC_BYTES = struct.pack(">I", FAT_MAGIC)
FAT_MAGIC_64_BYTES = b"\xca\xfe\xba\xbf"

# Load commands whose payload is a linkedit_data_command (dataoff, datasize)
LINKEDIT_DATA_COMMANDS = frozenset(
    {
        0x1D,  # LC_CODE_SIGNATURE
        0x1E,  # LC_SEGMENT_SPLIT_INFO
        0x26,  # LC_FUNCTION_STARTS
        0x29,  # LC_DATA_IN_CODE
        0x2B,  # LC_DYLIB_CODE_SIGN_DRS
        0x2E,  # LC_LINKER_OPTIMIZATION_HINT
        0x80000033,  # LC_DYLD_EXPORTS_TRIE
        0x80000034,  # LC_DYLD_CHAINED_FIXUPS
    }
)

DYSYMTAB_OFFSET_FIELDS = (
    "tocoff",
    "modtaboff",
    "extrefsymoff",
    "indirectsymoff",
    "extreloff",
    "locreloff",
)

# Size of the LC_BUILD_VERSION command written by the patcher (no tools)
BUILD_VERSION_CMDSIZE = sizeof(load_command) + sizeof(build_version_command)

# BSD ar(1) format
AR_MAGIC = b"!<arch>\n"
AR_FMAG = b"`\n"
AR_HEADER = struct.Struct("16s12s6s6s8s10s2s")
AR_LONG_NAME_PREFIX = "#1/"
SYMDEF_NAMES = frozenset(
    {
        "__.SYMDEF",
        "__.SYMDEF SORTED",
        "__.SYMDEF_64",
        "__.SYMDEF_64 SORTED",
    }
)

# Rewrites "target arm64-apple-ios13.0 " to "target arm64-apple-ios13.0-simulator "
SWIFTINTERFACE_GLOB = "arm64*.swiftinterface"
SWIFTINTERFACE_TARGET = re.compile(rb"target arm64-apple-ios([0-9.]+) ")
SWIFTINTERFACE_REPLACEMENT = rb"target arm64-apple-ios\1-simulator "

XCFRAMEWORK_PLIST_TMPL = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>AvailableLibraries</key>
    <array>
        <dict>
            <key>LibraryIdentifier</key>
            <string>ios-arm64_armv7</string>
            <key>LibraryPath</key>
            <string>Framework.framework</string>
            <key>SupportedArchitectures</key>
            <array>
                <string>arm64</string>
                <string>armv7</string>
            </array>
            <key>SupportedPlatform</key>
            <string>ios</string>
        </dict>
        <dict>
            <key>LibraryIdentifier</key>
            <string>ios-arm64_x86_64-simulator</string>
            <key>LibraryPath</key>
            <string>Framework.framework</string>
            <key>SupportedArchitectures</key>
            <array>
                <string>arm64</string>
                <string>x86_64</string>
            </array>
            <key>SupportedPlatform</key>
            <string>ios</string>
            <key>SupportedPlatformVariant</key>
            <string>simulator</string>
        </dict>
    </array>
    <key>CFBundlePackageType</key>
    <string>XFWK</string>
    <key>XCFrameworkFormatVersion</key>
    <string>1.0</string>
</dict>
</plist>
"""

# ----------------------------------------------------------------------------
# Optional dotenv support (zero production dependencies)


def _load_dotenv() -> None:
    """Attempt to load .env file if python-dotenv is available."""
    try:
        from dotenv import load_dotenv

        load_dotenv()
    except ImportError:
        pass


_load_dotenv()

# ----------------------------------------------------------------------------
# Error handling


class ConverterError(Exception):
    """Base exception class for xcconverter errors.

    The converter records which framework and slice were being processed
    when the error was raised, so that a failure can be diagnosed from a
    single log line.
    """

    framework: Path | None = None
    slice_identifier: str | None = None

    def describe(self) -> str:
        """Return the error message together with its conversion context."""
        context = []
        if self.framework is not None:
            context.append(f"framework {self.framework}")
        if self.slice_identifier is not None:
            context.append(f"slice {self.slice_identifier}")
        if not context:
            return str(self)
        return f"{str(self)} ({', '.join(context)})"


class InputError(ConverterError):
    """Exception raised when an input path, template or descriptor is invalid."""


class ConfigurationError(ConverterError):
    """Exception raised when configuration is invalid."""


class FormatError(ConverterError):
    """Exception raised when a binary or archive cannot be processed."""


class MissingLoadCommandError(FormatError):
    """Exception raised when a required load command is absent."""

    def __init__(self, command: str, path: Pathlike):
        self.command = command
        self.path = Path(path)
        super().__init__(f"{command} not found in {path}")


class UnsupportedFormatError(FormatError):
    """Exception raised for binaries this tool deliberately does not handle."""


class ToolError(ConverterError):
    """Exception raised when a binary tool operation fails."""


class CommandError(ToolError):
    """Exception raised when a command fails."""

    def __init__(
        self, command: str, returncode: int, output: str | None = None
    ):
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"Command '{command}' failed with return code {returncode}"
        )


class ArchitectureError(ToolError):
    """Exception raised when an architecture is missing from a container."""


class ConsistencyError(ConverterError):
    """Exception raised when a binary disagrees with its Info.plist."""


def describe_error(error: BaseException) -> str:
    """Format an error for logging, including conversion context if known."""
    if isinstance(error, ConverterError):
        return error.describe()
    return str(error)


# ----------------------------------------------------------------------------
# Configuration file support


def load_config(config_path: Path | None = None) -> dict[str, object]:
    """Load configuration from a TOML file.

    Searches for configuration in the following order:
    1. Explicit config_path if provided
    2. .xcconverter.toml in current directory
    3. xcconverter.toml in current directory

    Args:
        config_path: Optional explicit path to config file

    Returns:
        Configuration dictionary (empty if no config found)

    Raises:
        ConfigurationError: If the explicit file is missing or a config
            file cannot be parsed

    Example .xcconverter.toml:
        [convert]
        backend = "xcrun"
        jobs = 4
        template = "xcframework_template.plist"
        linkage = "static"
    """
    try:
        import tomllib
    except ImportError:  # Python < 3.11
        import tomli as tomllib  # type: ignore[no-redef]

    if config_path is not None:
        if not config_path.is_file():
            raise ConfigurationError(f"Config file not found: {config_path}")
        paths_to_try = [config_path]
    else:
        cwd = Path.cwd()
        paths_to_try = [
            cwd / ".xcconverter.toml",
            cwd / "xcconverter.toml",
        ]

    for path in paths_to_try:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    data: dict[str, object] = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigurationError(
                    f"Invalid config file {path}: {e}"
                ) from e
            return data

    return {}


def get_config_value(
    config: dict[str, object],
    section: str,
    key: str,
    default: str | int | None = None,
) -> str | int | None:
    """Get a value from config with section.key lookup.

    Args:
        config: Configuration dictionary
        section: Section name (e.g., "convert")
        key: Key name within section
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    section_config = config.get(section, {})
    if not isinstance(section_config, dict):
        return default
    value = section_config.get(key, default)
    if value is None or isinstance(value, (str, int)):
        return value
    return default


# Global config (loaded lazily)
_config: dict[str, object] | None = None


def get_config() -> dict[str, object]:
    """Get the global configuration, loading it if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def resolve_backend(
    backend: str | None = None, config: dict[str, object] | None = None
) -> str:
    """Pick the tool backend.

    Precedence: explicit value, then the XCCONVERTER_BACKEND environment
    variable, then ``[convert] backend`` from the config file.

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    if backend is None:
        backend = os.environ.get(ENV_BACKEND)
    if backend is None and config is not None:
        value = get_config_value(config, "convert", "backend")
        backend = str(value) if value is not None else None
    backend = backend or DEFAULT_BACKEND
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unknown backend '{backend}' (expected one of: {', '.join(BACKENDS)})"
        )
    return backend


# ----------------------------------------------------------------------------
# Logging configuration


class CustomFormatter(logging.Formatter):
    """Custom logging formatting class with color support."""

    class color:
        """Text colors for terminal output."""

        white = "\x1b[97;20m"
        grey = "\x1b[38;20m"
        green = "\x1b[32;20m"
        cyan = "\x1b[36;20m"
        yellow = "\x1b[33;20m"
        red = "\x1b[31;20m"
        bold_red = "\x1b[31;1m"
        reset = "\x1b[0m"

    cfmt = (
        f"{color.white}%(delta)s{color.reset} - "
        f"{{}}%(levelname)s{color.reset} - "
        f"{color.white}%(name)s.%(funcName)s{color.reset} - "
        f"{color.grey}%(message)s{color.reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(color.grey),
        logging.INFO: cfmt.format(color.green),
        logging.WARNING: cfmt.format(color.yellow),
        logging.ERROR: cfmt.format(color.red),
        logging.CRITICAL: cfmt.format(color.bold_red),
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color
        self.fmt = (
            "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with color if enabled."""
        if not self.use_color:
            log_fmt = self.fmt
        else:
            log_fmt = self.FORMATS[record.levelno]
        duration = datetime.datetime.fromtimestamp(
            record.relativeCreated / 1000, datetime.timezone.utc
        )
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def setup_logging(debug: bool = True, use_color: bool = True) -> None:
    """Configure logging for the application.

    Args:
        debug: Whether to enable debug logging
        use_color: Whether to use colored output
    """
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(CustomFormatter(use_color))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[stream_handler],
    )


# ----------------------------------------------------------------------------
# Command execution utilities


def run_command(
    command: list[str],
    cwd: Pathlike | None = None,
    log: logging.Logger | None = None,
) -> str:
    """Run a command and return its output.

    Every external tool invocation goes through here, so a failing tool
    always surfaces as a CommandError. Uses shell=False.

    Args:
        command: The command as a list of arguments
        cwd: Optional working directory for the command
        log: Optional logger for debug output

    Returns:
        The command stdout output

    Raises:
        CommandError: If the command fails
    """
    cmd_str = " ".join(command)
    if log:
        log.debug("%s", cmd_str)
    try:
        result = subprocess.run(
            command,
            shell=False,
            check=True,
            text=True,
            capture_output=True,
            cwd=cwd,
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        raise CommandError(cmd_str, e.returncode, e.stderr or e.output) from e
    except OSError as e:
        raise CommandError(cmd_str, -1, str(e)) from e


def _atomic_write(path: Path, blob: bytes) -> None:
    """Replace path with blob, keeping its permissions."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as fopen:
            fopen.write(blob)
        if path.exists():
            shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


# ----------------------------------------------------------------------------
# Mach-O primitives


def arch_name(cputype: int, cpusubtype: int) -> str:
    """Return the lipo-style name of a CPU type/subtype pair."""
    subtype = cpusubtype & CPU_SUBTYPE_MASK
    name = ARCH_NAMES.get((cputype, subtype))
    if name is None:
        return f"cputype({cputype})_cpusubtype({subtype})"
    return name


def parse_version(text: str) -> int:
    """Encode a dotted version string as xxxx.yy.zz nibbles.

    >>> hex(parse_version("13.4.1"))
    '0xd0401'
    """
    parts = str(text).strip().split(".")
    if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
        raise FormatError(f"Invalid version string: {text!r}")
    major, minor, patch = (int(p) for p in parts + ["0"] * (3 - len(parts)))
    if major > 0xFFFF or minor > 0xFF or patch > 0xFF:
        raise FormatError(f"Version out of range: {text!r}")
    return major << 16 | minor << 8 | patch


def format_version(encoded: int) -> str:
    """Decode xxxx.yy.zz nibbles; the patch level is omitted when zero."""
    major, minor, patch = encoded >> 16, (encoded >> 8) & 0xFF, encoded & 0xFF
    if patch:
        return f"{major}.{minor}.{patch}"
    return f"{major}.{minor}"


@dataclass(frozen=True)
class VersionMin:
    """Decoded LC_VERSION_MIN_IPHONEOS command."""

    version: int
    sdk: int

    @property
    def version_string(self) -> str:
        return format_version(self.version)

    @property
    def sdk_string(self) -> str:
        return format_version(self.sdk)

    @property
    def major(self) -> int:
        return self.version >> 16


@dataclass(frozen=True)
class BuildVersion:
    """Decoded LC_BUILD_VERSION command."""

    platform: int
    minos: int
    sdk: int

    @property
    def platform_name(self) -> str:
        return PLATFORM_NAMES.get(self.platform, f"platform({self.platform})")


def _macho_endian(magic: bytes) -> str | None:
    if magic in (b"\xfe\xed\xfa\xce", b"\xfe\xed\xfa\xcf"):
        return ">"
    if magic in (b"\xce\xfa\xed\xfe", b"\xcf\xfa\xed\xfe"):
        return "<"
    return None


def is_valid_macho(path: Pathlike, allow_fat: bool = True) -> bool:
    """Check if a file is a valid Mach-O binary.

    Args:
        path: Path to the file to check
        allow_fat: Whether universal binaries count

    Returns:
        True if the file is a valid Mach-O binary, False otherwise
    """
    path = Path(path)
    if not path.exists() or not path.is_file():
        return False

    try:
        with open(path, "rb") as f:
            magic = f.read(4)
        if not allow_fat and _macho_endian(magic) is None:
            return False
        return magic in MACHO_MAGIC_NUMBERS
    except OSError:
        return False


def _read_fat_archs(fh, source: object) -> list[fat_arch]:
    """Read the fat header and arch table at the start of fh."""
    try:
        header = fat_header.from_fileobj(fh)
        return [fat_arch.from_fileobj(fh) for _ in range(header.nfat_arch)]
    except struct.error as e:
        raise FormatError(f"Truncated fat header in {source}: {e}") from e


def _read_mach_header(blob: bytes, source: object) -> mach_header:
    endian = _macho_endian(blob[:4])
    if endian is None or len(blob) < sizeof(mach_header):
        raise FormatError(f"{source} is not a Mach-O file")
    return mach_header.from_str(blob[: sizeof(mach_header)], _endian_=endian)


def _image_cpu(blob: bytes, source: object) -> tuple[int, int]:
    """Return (cputype, cpusubtype) of a thin image or of an archive."""
    if blob.startswith(AR_MAGIC):
        for member in parse_archive(blob, source):
            if not member.is_symdef:
                return _image_cpu(member.data, f"{source}({member.name})")
        raise FormatError(f"Archive {source} contains no object files")
    header = _read_mach_header(blob, source)
    return header.cputype, header.cpusubtype


def _load_macho(path: Path) -> MachO:
    try:
        return MachO(str(path), allow_unknown_load_commands=True)
    except (ValueError, struct.error) as e:
        raise FormatError(f"Cannot parse Mach-O file {path}: {e}") from e


def _select_header(macho: MachO, path: Path, arch: str | None = None):
    headers = macho.headers
    if arch is None:
        if len(headers) != 1:
            raise ArchitectureError(
                f"{path} contains {len(headers)} architectures; pick one"
            )
        return headers[0]
    for header in headers:
        if arch_name(header.header.cputype, header.header.cpusubtype) == arch:
            return header
    raise ArchitectureError(f"{path} does not contain architecture {arch}")


def _mach_header_size(header) -> int:
    if header.header.cputype & CPU_ARCH_ABI64:
        return sizeof(mach_header_64)
    return sizeof(mach_header)


def _find_commands(header, cmd: int) -> list[tuple[int, tuple]]:
    return [
        (index, entry)
        for index, entry in enumerate(header.commands)
        if entry[0].cmd == cmd
    ]


def _version_min_entry(header, path: Path) -> tuple[int, tuple]:
    found = _find_commands(header, LC_VERSION_MIN_IPHONEOS)
    if found:
        return found[0]
    if _find_commands(header, LC_BUILD_VERSION):
        raise UnsupportedFormatError(
            f"{path} declares LC_BUILD_VERSION instead of "
            "LC_VERSION_MIN_IPHONEOS; only device builds with a minimum "
            "iOS version command can be converted"
        )
    raise MissingLoadCommandError("LC_VERSION_MIN_IPHONEOS", path)


def read_version_min(path: Pathlike, arch: str | None = None) -> VersionMin:
    """Read the LC_VERSION_MIN_IPHONEOS command of a Mach-O image.

    Raises:
        MissingLoadCommandError: If the image has no such command
        UnsupportedFormatError: If the image uses LC_BUILD_VERSION instead
    """
    path = Path(path)
    header = _select_header(_load_macho(path), path, arch)
    _, (_, cmd, _) = _version_min_entry(header, path)
    return VersionMin(cmd.version, cmd.sdk)


def read_build_version(
    path: Pathlike, arch: str | None = None
) -> BuildVersion | None:
    """Read the LC_BUILD_VERSION command of a Mach-O image, if any."""
    path = Path(path)
    header = _select_header(_load_macho(path), path, arch)
    found = _find_commands(header, LC_BUILD_VERSION)
    if not found:
        return None
    _, (_, cmd, _) = found[0]
    return BuildVersion(cmd.platform, cmd.minos, cmd.sdk)


def _offset_fields(header):
    """Yield (structure, field name) pairs that hold file offsets."""
    for lc, cmd, data in header.commands:
        if lc.cmd in (LC_SEGMENT, LC_SEGMENT_64):
            yield cmd, "fileoff"
            for section in data:
                yield section, "offset"
                yield section, "reloff"
        elif lc.cmd == LC_SYMTAB:
            yield cmd, "symoff"
            yield cmd, "stroff"
        elif lc.cmd == LC_DYSYMTAB:
            for name in DYSYMTAB_OFFSET_FIELDS:
                yield cmd, name
        elif lc.cmd in LINKEDIT_DATA_COMMANDS and cmd is not lc:
            yield cmd, "dataoff"


def _first_content_offset(header) -> int:
    offsets = [
        getattr(obj, name)
        for obj, name in _offset_fields(header)
        if getattr(obj, name) > 0
    ]
    return min(offsets, default=header.size)


def _serialize_header(header) -> bytes:
    """Serialize a mach header and its load commands."""
    chunks = [header.header.to_str()]
    for lc, cmd, data in header.commands:
        chunks.append(lc.to_str())
        # macholib stores unknown commands as (lc, lc, payload)
        if cmd is not lc:
            chunks.append(cmd.to_str())
        if isinstance(data, (bytes, bytearray)):
            chunks.append(bytes(data))
        else:
            chunks.extend(section.to_str() for section in data)
    return b"".join(chunks)


def _shift_file_offsets(header, threshold: int, delta: int) -> None:
    for lc, cmd, _ in header.commands:
        if cmd is lc and lc.cmd in LINKEDIT_DATA_COMMANDS:
            raise UnsupportedFormatError(
                f"Cannot relocate load command 0x{lc.cmd:x}"
            )
    for obj, name in _offset_fields(header):
        value = getattr(obj, name)
        if value >= threshold:
            setattr(obj, name, value + delta)


def rewrite_build_version(
    path: Pathlike,
    platform: int,
    minos: int,
    sdk: int,
    arch: str | None = None,
) -> None:
    """Replace LC_VERSION_MIN_IPHONEOS with an LC_BUILD_VERSION command.

    The new command is 8 bytes longer than the one it replaces. The extra
    bytes come out of the zero padding between the load commands and the
    first section. Object files usually have no such padding; their
    contents are then moved down by 8 bytes and every file offset in the
    load commands is adjusted. Linked images without padding are rejected.

    Args:
        path: Mach-O file to patch in place
        platform: LC_BUILD_VERSION platform identifier
        minos: Encoded minimum OS version
        sdk: Encoded SDK version
        arch: Architecture to patch when path is a fat file

    Raises:
        MissingLoadCommandError: If there is no LC_VERSION_MIN_IPHONEOS
        UnsupportedFormatError: If the image already uses LC_BUILD_VERSION
        FormatError: If there is no room for the new command
    """
    path = Path(path)
    macho = _load_macho(path)
    header = _select_header(macho, path, arch)
    index, (old_lc, _, _) = _version_min_entry(header, path)

    growth = BUILD_VERSION_CMDSIZE - old_lc.cmdsize
    start = header.offset
    old_end = start + _mach_header_size(header) + header.header.sizeofcmds
    content_start = start + _first_content_offset(header)

    header.commands[index] = (
        load_command(
            cmd=LC_BUILD_VERSION,
            cmdsize=BUILD_VERSION_CMDSIZE,
            _endian_=header.endian,
        ),
        build_version_command(
            platform=platform,
            minos=minos,
            sdk=sdk,
            ntools=0,
            _endian_=header.endian,
        ),
        b"",
    )
    header.header.sizeofcmds += growth

    blob = path.read_bytes()
    padding = blob[old_end : old_end + growth]
    if old_end + growth <= content_start and padding == bytes(growth):
        commands = _serialize_header(header)
        patched = blob[:start] + commands + blob[start + len(commands) :]
    elif header.header.filetype == MH_OBJECT and macho.fat is None:
        _shift_file_offsets(header, old_end - start, growth)
        commands = _serialize_header(header)
        patched = commands + blob[old_end:]
    else:
        raise FormatError(
            f"Not enough header padding in {path} to insert LC_BUILD_VERSION"
        )

    if len(commands) != old_end - start + growth:
        raise FormatError(f"Load commands of {path} did not serialize cleanly")
    _atomic_write(path, patched)


# ----------------------------------------------------------------------------
# Static archives


@dataclass(frozen=True)
class ArchiveMember:
    """One member of a BSD ar(1) archive.

    Header fields are kept as the raw bytes found in the archive so that a
    rewritten archive differs from the original only where member contents
    changed.
    """

    name: str
    data: bytes
    date: bytes = b"0"
    uid: bytes = b"0"
    gid: bytes = b"0"
    mode: bytes = b"100644"
    long_name: bytes = b""
    offset: int | None = None

    @classmethod
    def new(cls, name: str, data: bytes) -> "ArchiveMember":
        """Create a member the way ar(1) names new files."""
        encoded = name.encode("utf-8")
        if len(encoded) > 15 or b" " in encoded:
            padded = encoded.ljust((len(encoded) + 8) & ~7, b"\0")
            return cls(name, data, long_name=padded)
        return cls(name, data)

    @property
    def is_symdef(self) -> bool:
        return self.name in SYMDEF_NAMES

    @property
    def stored_size(self) -> int:
        return len(self.long_name) + len(self.data)

    def header(self) -> bytes:
        """Return the 60-byte ar header for this member."""
        if self.long_name:
            name_field = f"{AR_LONG_NAME_PREFIX}{len(self.long_name)}".encode()
        else:
            name_field = self.name.encode("utf-8")
        if len(name_field) > 16:
            raise FormatError(f"Archive member name too long: {self.name}")
        return b"".join(
            (
                name_field.ljust(16),
                self.date.ljust(12),
                self.uid.ljust(6),
                self.gid.ljust(6),
                self.mode.ljust(8),
                str(self.stored_size).encode().ljust(10),
                AR_FMAG,
            )
        )


def parse_archive(blob: bytes, source: object = "archive") -> list[ArchiveMember]:
    """Parse a BSD ar(1) archive into its members, in archive order."""
    if not blob.startswith(AR_MAGIC):
        raise FormatError(f"{source} is not an ar archive")
    members = []
    pos = len(AR_MAGIC)
    while pos < len(blob):
        if pos + AR_HEADER.size > len(blob):
            raise FormatError(f"Truncated member header in {source}")
        name, date, uid, gid, mode, size, fmag = AR_HEADER.unpack_from(blob, pos)
        if fmag != AR_FMAG:
            raise FormatError(f"Corrupt member header at {pos} in {source}")
        try:
            raw_name = name.decode("utf-8").rstrip(" ")
            stored_size = int(size.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError) as e:
            raise FormatError(
                f"Corrupt member header at {pos} in {source}: {e}"
            ) from e
        body = pos + AR_HEADER.size
        if body + stored_size > len(blob):
            raise FormatError(f"Truncated member at {pos} in {source}")

        long_name = b""
        if raw_name.startswith(AR_LONG_NAME_PREFIX):
            name_length = int(raw_name[len(AR_LONG_NAME_PREFIX) :])
            long_name = blob[body : body + name_length]
            member_name = long_name.rstrip(b"\0").decode("utf-8")
        elif raw_name.startswith("/"):
            raise UnsupportedFormatError(
                f"{source} is a GNU/SysV archive; only BSD archives are supported"
            )
        else:
            member_name = raw_name
        members.append(
            ArchiveMember(
                name=member_name,
                data=blob[body + len(long_name) : body + stored_size],
                date=date,
                uid=uid,
                gid=gid,
                mode=mode,
                long_name=long_name,
                offset=pos,
            )
        )
        pos = body + stored_size + (stored_size & 1)
    return members


def read_archive(path: Pathlike) -> list[ArchiveMember]:
    """Read a BSD ar(1) archive from disk."""
    path = Path(path)
    return parse_archive(path.read_bytes(), path)


def _relocate_symdef(
    member: ArchiveMember, offsets: dict[int, int]
) -> ArchiveMember:
    """Point the table of contents at the members' new header offsets."""
    word = struct.Struct("<Q" if "_64" in member.name else "<I")
    data = bytearray(member.data)
    if len(data) < word.size:
        raise FormatError(f"Truncated table of contents in {member.name}")
    (ranlib_size,) = word.unpack_from(data, 0)
    end = word.size + ranlib_size
    if end > len(data):
        raise FormatError(f"Truncated table of contents in {member.name}")
    for entry in range(word.size, end, 2 * word.size):
        (old,) = word.unpack_from(data, entry + word.size)
        if old not in offsets:
            raise FormatError(
                f"Table of contents references unknown member offset {old}"
            )
        word.pack_into(data, entry + word.size, offsets[old])
    return dataclasses.replace(member, data=bytes(data))


def build_archive(members: list[ArchiveMember]) -> bytes:
    """Serialize members into a BSD ar(1) archive.

    A table of contents member, if present, is rewritten so that its
    entries still refer to the right members after sizes changed.
    """
    offsets: dict[int, int] = {}
    pos = len(AR_MAGIC)
    for member in members:
        if member.offset is not None:
            offsets[member.offset] = pos
        pos += AR_HEADER.size + member.stored_size + (member.stored_size & 1)

    chunks = [AR_MAGIC]
    for member in members:
        if member.is_symdef:
            member = _relocate_symdef(member, offsets)
        chunks.append(member.header())
        chunks.append(member.long_name)
        chunks.append(member.data)
        if member.stored_size & 1:
            chunks.append(b"\n")
    return b"".join(chunks)


# ----------------------------------------------------------------------------
# Tool interfaces


@dataclass(frozen=True)
class FatSlice:
    """One architecture entry of a fat (universal) file."""

    arch: str
    cputype: int
    cpusubtype: int
    offset: int
    size: int
    align: int


class FatBinaryTool:
    """Extracts, replaces and removes architectures of fat binaries."""

    def architectures(self, binary: Pathlike) -> list[str]:
        """Return the architectures present in binary."""
        raise NotImplementedError

    def extract(self, binary: Pathlike, arch: str, output: Pathlike) -> None:
        """Write the arch slice of binary to output as a thin file."""
        raise NotImplementedError

    def replace(self, binary: Pathlike, arch: str, standalone: Pathlike) -> None:
        """Replace the existing arch slice of binary with standalone."""
        raise NotImplementedError

    def remove(self, binary: Pathlike, arch: str) -> None:
        """Remove the arch slice from binary in place."""
        raise NotImplementedError


class ArchiveTool:
    """Unpacks and repacks static archives."""

    def members(self, archive: Pathlike) -> list[str]:
        """Return member names in archive order, without the TOC."""
        raise NotImplementedError

    def unpack(self, archive: Pathlike, dest_dir: Pathlike) -> list[Path]:
        """Extract every member into dest_dir, in archive order."""
        raise NotImplementedError

    def pack(self, archive: Pathlike, files: list[Path]) -> None:
        """Replace same-named members of archive with files.

        Members keep their position; files without a counterpart are
        appended. The archive is created if it does not exist.
        """
        raise NotImplementedError


class BuildVersionTool:
    """Stamps LC_BUILD_VERSION into Mach-O images."""

    def set_build_version(
        self, binary: Pathlike, arch: str, platform: int, minos: str, sdk: str
    ) -> None:
        """Replace the version command of binary for arch."""
        raise NotImplementedError


class NativeFatTool(FatBinaryTool):
    """FatBinaryTool that edits fat headers with macholib structures.

    Thin files are accepted too: their single architecture can be
    extracted (copied) and replaced (overwritten).
    """

    def __init__(self):
        self.log = logging.getLogger(self.__class__.__name__)

    def slices(self, binary: Pathlike) -> tuple[bool, list[FatSlice]]:
        """Return (is_fat, slices) for binary."""
        binary = Path(binary)
        if not binary.is_file():
            raise InputError(f"Binary does not exist: {binary}")
        with open(binary, "rb") as fh:
            magic = fh.read(4)
            if magic == FAT_MAGIC_64_BYTES:
                raise UnsupportedFormatError(
                    f"64-bit fat headers are not supported: {binary}"
                )
            if magic == FAT_MAGIC_BYTES:
                fh.seek(0)
                archs = _read_fat_archs(fh, binary)
                return True, [
                    FatSlice(
                        arch_name(a.cputype, a.cpusubtype),
                        a.cputype,
                        a.cpusubtype,
                        a.offset,
                        a.size,
                        a.align,
                    )
                    for a in archs
                ]
        blob = binary.read_bytes()
        cputype, cpusubtype = _image_cpu(blob, binary)
        return False, [
            FatSlice(
                arch_name(cputype, cpusubtype),
                cputype,
                cpusubtype,
                0,
                len(blob),
                0,
            )
        ]

    def _find(self, binary: Path, arch: str) -> tuple[bool, list[FatSlice], int]:
        is_fat, slices = self.slices(binary)
        for index, fat_slice in enumerate(slices):
            if fat_slice.arch == arch:
                return is_fat, slices, index
        present = ", ".join(s.arch for s in slices)
        raise ArchitectureError(
            f"{binary} does not contain architecture {arch} (has: {present})"
        )

    def architectures(self, binary: Pathlike) -> list[str]:
        _, slices = self.slices(binary)
        return [s.arch for s in slices]

    def extract(self, binary: Pathlike, arch: str, output: Pathlike) -> None:
        binary, output = Path(binary), Path(output)
        _, slices, index = self._find(binary, arch)
        fat_slice = slices[index]
        self.log.debug("extract %s from %s", arch, binary)
        with open(binary, "rb") as fh:
            fh.seek(fat_slice.offset)
            output.write_bytes(fh.read(fat_slice.size))

    def replace(self, binary: Pathlike, arch: str, standalone: Pathlike) -> None:
        binary, standalone = Path(binary), Path(standalone)
        is_fat, slices, index = self._find(binary, arch)
        blob = standalone.read_bytes()
        self.log.debug("replace %s in %s", arch, binary)
        if not is_fat:
            _atomic_write(binary, blob)
            return
        fat_slice = slices[index]
        if len(blob) == fat_slice.size:
            with open(binary, "r+b") as fh:
                fh.seek(fat_slice.offset)
                fh.write(blob)
            return
        entries = self._read_entries(binary, slices)
        entries[index] = (fat_slice, blob)
        self._write(binary, entries)

    def remove(self, binary: Pathlike, arch: str) -> None:
        binary = Path(binary)
        is_fat, slices, index = self._find(binary, arch)
        if not is_fat or len(slices) == 1:
            raise ArchitectureError(
                f"Cannot remove {arch}: it is the only architecture in {binary}"
            )
        self.log.debug("remove %s from %s", arch, binary)
        entries = self._read_entries(binary, slices)
        del entries[index]
        self._write(binary, entries)

    @staticmethod
    def _read_entries(
        binary: Path, slices: list[FatSlice]
    ) -> list[tuple[FatSlice, bytes]]:
        entries = []
        with open(binary, "rb") as fh:
            for fat_slice in slices:
                fh.seek(fat_slice.offset)
                entries.append((fat_slice, fh.read(fat_slice.size)))
        return entries

    @staticmethod
    def _write(binary: Path, entries: list[tuple[FatSlice, bytes]]) -> None:
        """Lay out slices after the arch table, honouring each alignment."""
        offset = sizeof(fat_header) + len(entries) * sizeof(fat_arch)
        layout = []
        for fat_slice, blob in entries:
            alignment = 1 << fat_slice.align
            offset = (offset + alignment - 1) & ~(alignment - 1)
            layout.append((fat_slice, offset, blob))
            offset += len(blob)

        chunks = [fat_header(magic=FAT_MAGIC, nfat_arch=len(layout)).to_str()]
        for fat_slice, slice_offset, blob in layout:
            chunks.append(
                fat_arch(
                    cputype=fat_slice.cputype,
                    cpusubtype=fat_slice.cpusubtype,
                    offset=slice_offset,
                    size=len(blob),
                    align=fat_slice.align,
                ).to_str()
            )
        written = sum(len(c) for c in chunks)
        for _, slice_offset, blob in layout:
            chunks.append(bytes(slice_offset - written))
            chunks.append(blob)
            written = slice_offset + len(blob)
        _atomic_write(binary, b"".join(chunks))


class NativeArchiveTool(ArchiveTool):
    """ArchiveTool that reads and writes BSD archives directly.

    Repacking keeps member headers as they were and relocates the table of
    contents, so the output is deterministic and stays linkable.
    """

    def __init__(self):
        self.log = logging.getLogger(self.__class__.__name__)

    def members(self, archive: Pathlike) -> list[str]:
        return [m.name for m in read_archive(archive) if not m.is_symdef]

    def unpack(self, archive: Pathlike, dest_dir: Pathlike) -> list[Path]:
        dest_dir = Path(dest_dir)
        members = [m for m in read_archive(archive) if not m.is_symdef]
        _check_member_names(archive, [m.name for m in members])
        paths = []
        for member in members:
            path = dest_dir / member.name
            path.write_bytes(member.data)
            paths.append(path)
        self.log.debug("unpacked %d members of %s", len(paths), archive)
        return paths

    def pack(self, archive: Pathlike, files: list[Path]) -> None:
        archive = Path(archive)
        members = read_archive(archive) if archive.exists() else []
        index = {m.name: i for i, m in enumerate(members) if not m.is_symdef}
        for path in files:
            data = Path(path).read_bytes()
            name = Path(path).name
            if name in index:
                position = index[name]
                members[position] = dataclasses.replace(
                    members[position], data=data
                )
            else:
                index[name] = len(members)
                members.append(ArchiveMember.new(name, data))
        self.log.debug("packed %d members into %s", len(files), archive)
        _atomic_write(archive, build_archive(members))


def _check_member_names(archive: Pathlike, names: list[str]) -> None:
    seen = set()
    for name in names:
        if name in ("", ".", "..") or "/" in name:
            raise FormatError(f"Unsafe member name {name!r} in {archive}")
        if name in seen:
            raise UnsupportedFormatError(
                f"Duplicate member name {name!r} in {archive}"
            )
        seen.add(name)


class NativeBuildVersionTool(BuildVersionTool):
    """BuildVersionTool backed by rewrite_build_version()."""

    def set_build_version(
        self, binary: Pathlike, arch: str, platform: int, minos: str, sdk: str
    ) -> None:
        rewrite_build_version(
            binary, platform, parse_version(minos), parse_version(sdk), arch
        )


class LipoTool(FatBinaryTool):
    """FatBinaryTool that runs ``xcrun lipo``."""

    def __init__(self):
        self.log = logging.getLogger(self.__class__.__name__)

    def run_command(self, command: list[str]) -> str:
        return run_command(command, log=self.log)

    def architectures(self, binary: Pathlike) -> list[str]:
        return self.run_command(["xcrun", "lipo", str(binary), "-archs"]).split()

    def extract(self, binary: Pathlike, arch: str, output: Pathlike) -> None:
        self.run_command(
            ["xcrun", "lipo", str(binary), "-thin", arch, "-output", str(output)]
        )

    def replace(self, binary: Pathlike, arch: str, standalone: Pathlike) -> None:
        self.run_command(
            [
                "xcrun",
                "lipo",
                str(binary),
                "-replace",
                arch,
                str(standalone),
                "-output",
                str(binary),
            ]
        )

    def remove(self, binary: Pathlike, arch: str) -> None:
        self.run_command(
            ["xcrun", "lipo", str(binary), "-remove", arch, "-output", str(binary)]
        )


class ArTool(ArchiveTool):
    """ArchiveTool that runs ``ar``."""

    def __init__(self):
        self.log = logging.getLogger(self.__class__.__name__)

    def run_command(self, command: list[str], cwd: Pathlike | None = None) -> str:
        return run_command(command, cwd=cwd, log=self.log)

    def members(self, archive: Pathlike) -> list[str]:
        output = self.run_command(["ar", "t", str(archive)])
        return [
            line
            for line in output.splitlines()
            if line and line not in SYMDEF_NAMES
        ]

    def unpack(self, archive: Pathlike, dest_dir: Pathlike) -> list[Path]:
        archive = Path(archive).resolve()
        names = self.members(archive)
        _check_member_names(archive, names)
        self.run_command(["ar", "x", str(archive)], cwd=dest_dir)
        paths = [Path(dest_dir) / name for name in names]
        missing = [p.name for p in paths if not p.is_file()]
        if missing:
            raise ToolError(f"ar did not extract {', '.join(missing)}")
        return paths

    def pack(self, archive: Pathlike, files: list[Path]) -> None:
        self.run_command(
            ["ar", "crv", str(archive)] + [str(Path(f).resolve()) for f in files]
        )


class VtoolBuildVersionTool(BuildVersionTool):
    """BuildVersionTool that runs ``xcrun vtool``."""

    def __init__(self):
        self.log = logging.getLogger(self.__class__.__name__)

    def set_build_version(
        self, binary: Pathlike, arch: str, platform: int, minos: str, sdk: str
    ) -> None:
        run_command(
            [
                "xcrun",
                "vtool",
                "-arch",
                arch,
                "-set-build-version",
                str(platform),
                minos,
                sdk,
                "-replace",
                "-output",
                str(binary),
                str(binary),
            ],
            log=self.log,
        )


@dataclass(frozen=True)
class Toolchain:
    """The three binary tools used by a conversion."""

    fat: FatBinaryTool
    archive: ArchiveTool
    build_version: BuildVersionTool

    @classmethod
    def for_backend(cls, backend: str = DEFAULT_BACKEND) -> "Toolchain":
        """Create the toolchain for a backend name.

        Raises:
            ConfigurationError: If the backend name is unknown
        """
        if backend == BACKEND_NATIVE:
            return cls(NativeFatTool(), NativeArchiveTool(), NativeBuildVersionTool())
        if backend == BACKEND_XCRUN:
            return cls(LipoTool(), ArTool(), VtoolBuildVersionTool())
        raise ConfigurationError(
            f"Unknown backend '{backend}' (expected one of: {', '.join(BACKENDS)})"
        )


# ----------------------------------------------------------------------------
# Framework linkage


class Linkage(str, enum.Enum):
    """How a framework binary is linked."""

    STATIC = "static"
    DYNAMIC = "dynamic"

    @classmethod
    def parse(cls, value: "str | Linkage") -> "Linkage":
        """Convert a user-supplied value to a Linkage."""
        try:
            return cls(value)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown linkage '{value}' (expected 'static' or 'dynamic')"
            ) from e


def detect_linkage(binary: Pathlike) -> Linkage:
    """Tell static archives from dynamic libraries by their headers.

    Raises:
        InputError: If the binary is neither
        FormatError: If a fat header is truncated
    """
    binary = Path(binary)
    if not binary.is_file():
        raise InputError(f"Binary does not exist: {binary}")
    with open(binary, "rb") as fh:
        head = fh.read(4096)
        if head[:4] == FAT_MAGIC_BYTES:
            fh.seek(0)
            archs = _read_fat_archs(fh, binary)
            if not archs:
                raise FormatError(f"Fat binary {binary} has no architectures")
            fh.seek(archs[0].offset)
            head = fh.read(4096)
    if head.startswith(AR_MAGIC):
        return Linkage.STATIC
    if _macho_endian(head[:4]) is not None:
        filetype = _read_mach_header(head, binary).filetype
        if filetype == MH_DYLIB:
            return Linkage.DYNAMIC
        if filetype == MH_OBJECT:
            return Linkage.STATIC
    raise InputError(
        f"Cannot determine linkage of {binary}; pass it explicitly"
    )


def framework_binary(framework: Pathlike) -> Path:
    """Return the binary of a .framework bundle.

    Looks for the ``CFBundleExecutable`` named in the bundle's Info.plist,
    then ``<Name>``, then ``Versions/Current/<Name>``. Symlinks are resolved
    so that binaries are patched where they live.

    Raises:
        InputError: If the bundle has no binary or an unreadable Info.plist
    """
    framework = Path(framework)
    names = [framework.stem]
    executable = _bundle_executable(framework)
    if executable and executable != framework.stem:
        names.insert(0, executable)
    for name in names:
        for candidate in (framework / name, framework / "Versions" / "Current" / name):
            if candidate.is_file():
                return candidate.resolve() if candidate.is_symlink() else candidate
    raise InputError(f"No binary named {' or '.join(names)} found in {framework}")


def _bundle_executable(framework: Path) -> str | None:
    """Return CFBundleExecutable from a framework's Info.plist, if any."""
    for info_plist in (
        framework / "Info.plist",
        framework / "Versions" / "Current" / "Resources" / "Info.plist",
    ):
        if not info_plist.is_file():
            continue
        try:
            with open(info_plist, "rb") as fopen:
                plist = plistlib.load(fopen)
        except (ValueError, ExpatError) as e:
            raise InputError(f"Malformed Info.plist in {framework}: {e}") from e
        executable = plist.get("CFBundleExecutable") if isinstance(plist, dict) else None
        if isinstance(executable, str) and executable and "/" not in executable:
            return executable
        return None
    return None


# ----------------------------------------------------------------------------
# Descriptor (Info.plist) model


@dataclass(frozen=True)
class LibrarySlice:
    """One AvailableLibraries entry of an xcframework Info.plist."""

    identifier: str
    platform: str
    supported_architectures: tuple[str, ...]
    library_path: str
    platform_variant: str | None = None

    @classmethod
    def from_plist(cls, entry: object, source: object) -> "LibrarySlice":
        if not isinstance(entry, dict):
            raise InputError(f"AvailableLibraries entry is not a dict in {source}")
        identifier = entry.get("LibraryIdentifier")
        if (
            not isinstance(identifier, str)
            or identifier in ("", ".", "..")
            or "/" in identifier
        ):
            raise InputError(f"Invalid LibraryIdentifier {identifier!r} in {source}")
        platform = entry.get("SupportedPlatform")
        archs = entry.get("SupportedArchitectures")
        if not isinstance(platform, str):
            raise InputError(f"{identifier}: missing SupportedPlatform in {source}")
        if (
            not isinstance(archs, list)
            or not archs
            or not all(isinstance(a, str) for a in archs)
        ):
            raise InputError(
                f"{identifier}: invalid SupportedArchitectures in {source}"
            )
        variant = entry.get("SupportedPlatformVariant")
        if variant is not None and not isinstance(variant, str):
            raise InputError(
                f"{identifier}: invalid SupportedPlatformVariant in {source}"
            )
        return cls(
            identifier=identifier,
            platform=platform,
            supported_architectures=tuple(archs),
            library_path=str(entry.get("LibraryPath", "")),
            platform_variant=variant,
        )

    def to_plist(self) -> dict[str, object]:
        entry: dict[str, object] = {
            "LibraryIdentifier": self.identifier,
            "LibraryPath": self.library_path,
            "SupportedArchitectures": list(self.supported_architectures),
            "SupportedPlatform": self.platform,
        }
        if self.platform_variant is not None:
            entry["SupportedPlatformVariant"] = self.platform_variant
        return entry


@dataclass(frozen=True)
class XCFrameworkDescriptor:
    """Parsed xcframework Info.plist.

    Instances are never modified; the with_*/restricted_to methods return
    new descriptors.
    """

    libraries: tuple[LibrarySlice, ...]
    properties: dict[str, object] = field(default_factory=dict)

    @classmethod
    def from_plist(cls, plist: object, source: object) -> "XCFrameworkDescriptor":
        if not isinstance(plist, dict):
            raise InputError(f"Descriptor {source} is not a dictionary")
        entries = plist.get("AvailableLibraries")
        if not isinstance(entries, list) or not entries:
            raise InputError(f"Descriptor {source} has no AvailableLibraries")
        libraries = tuple(LibrarySlice.from_plist(e, source) for e in entries)
        identifiers = [lib.identifier for lib in libraries]
        if len(set(identifiers)) != len(identifiers):
            raise InputError(f"Duplicate LibraryIdentifier in {source}")
        properties = {
            k: v for k, v in plist.items() if k != "AvailableLibraries"
        }
        return cls(libraries, properties)

    @classmethod
    def loads(cls, data: bytes, source: object) -> "XCFrameworkDescriptor":
        try:
            plist = plistlib.loads(data)
        except (ValueError, ExpatError) as e:
            raise InputError(f"Malformed property list {source}: {e}") from e
        return cls.from_plist(plist, source)

    def to_plist(self) -> dict[str, object]:
        plist = dict(self.properties)
        plist["AvailableLibraries"] = [lib.to_plist() for lib in self.libraries]
        return plist

    def write(self, path: Pathlike) -> None:
        """Write the descriptor as an XML property list."""
        with open(path, "wb") as fopen:
            plistlib.dump(self.to_plist(), fopen, fmt=plistlib.FMT_XML)

    def with_library_path(self, library_path: str) -> "XCFrameworkDescriptor":
        """Return a copy whose slices all point at library_path."""
        return dataclasses.replace(
            self,
            libraries=tuple(
                dataclasses.replace(lib, library_path=library_path)
                for lib in self.libraries
            ),
        )

    def restricted_to(self, architectures: list[str]) -> "XCFrameworkDescriptor":
        """Return a copy declaring only architectures the binary has.

        Raises:
            InputError: If a slice would be left without architectures
        """
        available = set(architectures)
        libraries = []
        for lib in self.libraries:
            kept = tuple(a for a in lib.supported_architectures if a in available)
            if not kept:
                raise InputError(
                    f"Slice {lib.identifier} supports "
                    f"{', '.join(lib.supported_architectures)} but the binary "
                    f"only has {', '.join(architectures)}"
                )
            libraries.append(dataclasses.replace(lib, supported_architectures=kept))
        return dataclasses.replace(self, libraries=tuple(libraries))


def load_descriptor(template: Pathlike | None = None) -> XCFrameworkDescriptor:
    """Load the xcframework descriptor template.

    Args:
        template: Optional path to a template plist; the built-in template
            (device + simulator slices for iOS) is used when omitted

    Raises:
        InputError: If the template is missing or malformed
    """
    if template is None:
        return XCFrameworkDescriptor.loads(
            XCFRAMEWORK_PLIST_TMPL.encode("utf-8"), "built-in template"
        )
    template = Path(template)
    if not template.is_file():
        raise InputError(f"Template does not exist: {template}")
    return XCFrameworkDescriptor.loads(template.read_bytes(), template)


# ----------------------------------------------------------------------------
# Bundle synthesis


def synthesize_xcframework(
    framework: Pathlike,
    descriptor: XCFrameworkDescriptor,
    destination: Pathlike | None = None,
    remove_source: bool = True,
) -> Path:
    """Create an xcframework with one copy of framework per slice.

    Args:
        framework: Path to the source .framework bundle
        descriptor: Descriptor whose slices define the layout
        destination: Container path (default: framework with an
            .xcframework extension)
        remove_source: Delete the source framework afterwards

    Returns:
        Path to the created container

    Raises:
        InputError: If the source is missing or the destination exists
    """
    framework = Path(framework)
    destination = (
        Path(destination)
        if destination is not None
        else framework.with_suffix(XCFRAMEWORK_EXT)
    )
    if not framework.is_dir():
        raise InputError(f"Framework does not exist: {framework}")
    if destination.exists():
        raise InputError(f"Destination already exists: {destination}")

    descriptor = descriptor.with_library_path(framework.name)
    destination.mkdir()
    for lib in descriptor.libraries:
        slice_path = destination / lib.identifier
        slice_path.mkdir()
        shutil.copytree(framework, slice_path / framework.name, symlinks=True)
    descriptor.write(destination / "Info.plist")

    if remove_source:
        shutil.rmtree(framework)
    return destination


# ----------------------------------------------------------------------------
# Slice resolution


class Slice:
    """Read view of one library slice inside an xcframework."""

    def __init__(
        self,
        xcframework: Path,
        library: LibrarySlice,
        linkage: Linkage | None = None,
    ):
        self.library = library
        self.path = xcframework / library.identifier
        self._linkage = linkage

    def __repr__(self) -> str:
        return f"Slice({self.identifier!r})"

    @property
    def identifier(self) -> str:
        return self.library.identifier

    @property
    def platform(self) -> str:
        return self.library.platform

    @property
    def platform_variant(self) -> str | None:
        return self.library.platform_variant

    @property
    def supported_architectures(self) -> tuple[str, ...]:
        return self.library.supported_architectures

    @property
    def framework_path(self) -> Path:
        return self.path / self.library.library_path

    @property
    def binary_path(self) -> Path:
        return framework_binary(self.framework_path)

    @property
    def linkage(self) -> Linkage:
        if self._linkage is None:
            self._linkage = detect_linkage(self.binary_path)
        return self._linkage

    @property
    def is_simulator(self) -> bool:
        return self.platform == "ios" and self.platform_variant == "simulator"


class XCFramework:
    """An xcframework on disk.

    Args:
        path: Path to the .xcframework directory
        linkage: Linkage of the slices, detected per slice when omitted

    Raises:
        InputError: If Info.plist is missing or malformed, or a slice
            directory is missing
    """

    def __init__(self, path: Pathlike, linkage: Linkage | None = None):
        self.path = Path(path)
        info_plist = self.path / "Info.plist"
        if not info_plist.is_file():
            raise InputError(f"Not an xcframework (no Info.plist): {self.path}")
        self.descriptor = XCFrameworkDescriptor.loads(
            info_plist.read_bytes(), info_plist
        )
        self.slices = [
            Slice(self.path, lib, linkage) for lib in self.descriptor.libraries
        ]
        for slc in self.slices:
            if not slc.path.is_dir():
                raise InputError(
                    f"Slice directory {slc.identifier} missing from {self.path}"
                )


# ----------------------------------------------------------------------------
# Binary patching


class SlicePatcher:
    """Base class for the arm64 simulator patchers."""

    def __init__(self, toolchain: Toolchain):
        self.toolchain = toolchain
        self.log = logging.getLogger(self.__class__.__name__)

    def patch(self, slc: Slice) -> None:
        raise NotImplementedError

    def verify(self, image: Path, minos: int, sdk: int) -> None:
        """Check that image now targets the simulator at minos/sdk.

        Raises:
            ConsistencyError: If the build version is not what was written
        """
        build_version = read_build_version(image)
        expected = BuildVersion(PLATFORM_IOSSIMULATOR, minos, sdk)
        if build_version != expected:
            raise ConsistencyError(
                f"{image.name}: expected {expected} after patching, "
                f"found {build_version}"
            )


class DynamicPatcher(SlicePatcher):
    """Relabels the arm64 slice of a dynamic library for the simulator."""

    def patch(self, slc: Slice) -> None:
        binary = slc.binary_path
        with tempfile.TemporaryDirectory(prefix="xcconverter-") as workdir:
            extracted = Path(workdir) / f"{PATCH_ARCH}.dylib"
            self.toolchain.fat.extract(binary, PATCH_ARCH, extracted)

            version = read_version_min(extracted)
            self.log.info(
                "Patching %s %s: ios %s (sdk %s) -> ios-simulator",
                binary.name,
                PATCH_ARCH,
                version.version_string,
                version.sdk_string,
            )
            self.toolchain.build_version.set_build_version(
                extracted,
                PATCH_ARCH,
                PLATFORM_IOSSIMULATOR,
                version.version_string,
                version.sdk_string,
            )
            self.verify(extracted, version.version, version.sdk)
            self.toolchain.fat.replace(binary, PATCH_ARCH, extracted)


class StaticPatcher(SlicePatcher):
    """Relabels every arm64 object file of a static library.

    The minimum version of each object is truncated to its major version.
    All objects are checked before any is patched, and the archive is only
    put back once every object has been patched.
    """

    def patch(self, slc: Slice) -> None:
        binary = slc.binary_path
        with tempfile.TemporaryDirectory(prefix="xcconverter-") as workdir:
            extracted = Path(workdir) / f"{PATCH_ARCH}.a"
            self.toolchain.fat.extract(binary, PATCH_ARCH, extracted)

            objects_dir = Path(workdir) / f"{PATCH_ARCH}-objects"
            objects_dir.mkdir()
            objects = self.toolchain.archive.unpack(extracted, objects_dir)
            for member in objects:
                if not is_valid_macho(member, allow_fat=False):
                    raise FormatError(
                        f"Member {member.name} of the {PATCH_ARCH} slice of "
                        f"{binary} is not a Mach-O object file"
                    )
            if not objects:
                raise FormatError(f"No object files in {PATCH_ARCH} slice of {binary}")

            versions = {obj: read_version_min(obj) for obj in objects}
            self.log.info(
                "Patching %d object files of %s %s -> ios-simulator",
                len(objects),
                binary.name,
                PATCH_ARCH,
            )
            for obj, version in versions.items():
                major = str(version.major)
                self.toolchain.build_version.set_build_version(
                    obj, PATCH_ARCH, PLATFORM_IOSSIMULATOR, major, major
                )
                self.verify(obj, parse_version(major), parse_version(major))

            self.toolchain.archive.pack(extracted, objects)
            self.toolchain.fat.replace(binary, PATCH_ARCH, extracted)


PATCHERS: dict[Linkage, type[SlicePatcher]] = {
    Linkage.DYNAMIC: DynamicPatcher,
    Linkage.STATIC: StaticPatcher,
}


class ArchitecturePruner:
    """Removes architectures a slice does not declare."""

    def __init__(self, fat_tool: FatBinaryTool):
        self.fat = fat_tool
        self.log = logging.getLogger(self.__class__.__name__)

    def prune(self, slc: Slice) -> list[str]:
        """Prune slc's binary and return the removed architectures.

        Raises:
            ConsistencyError: If the binary still disagrees with Info.plist
        """
        binary = slc.binary_path
        declared = set(slc.supported_architectures)
        removed = [a for a in self.fat.architectures(binary) if a not in declared]
        for arch in removed:
            self.log.info("Removing %s from %s", arch, slc.identifier)
            self.fat.remove(binary, arch)

        remaining = set(self.fat.architectures(binary))
        if remaining != declared:
            raise ConsistencyError(
                f"{slc.identifier}: binary contains {', '.join(sorted(remaining))} "
                f"but Info.plist declares {', '.join(sorted(declared))}"
            )
        return removed


def arm64_target(slc: Slice, toolchain: Toolchain) -> str:
    """Return the platform and minimum OS the arm64 code of slc targets.

    Static libraries are judged by their first object file.
    """
    with tempfile.TemporaryDirectory(prefix="xcconverter-") as workdir:
        image = Path(workdir) / PATCH_ARCH
        toolchain.fat.extract(slc.binary_path, PATCH_ARCH, image)
        if slc.linkage is Linkage.STATIC:
            objects = [m for m in read_archive(image) if not m.is_symdef]
            if not objects:
                raise FormatError(f"No object files in {slc.binary_path}")
            image.write_bytes(objects[0].data)
        build_version = read_build_version(image)
        if build_version is not None:
            return f"{build_version.platform_name} {format_version(build_version.minos)}"
        return f"ios {read_version_min(image).version_string}"


def patch_swiftinterfaces(slice_path: Pathlike) -> list[Path]:
    """Point arm64 .swiftinterface files of a slice at the simulator.

    Files are handled as bytes; only the target triples change.

    Returns:
        The files that were rewritten
    """
    patched = []
    for interface in sorted(Path(slice_path).rglob(SWIFTINTERFACE_GLOB)):
        if not interface.is_file():
            continue
        data = interface.read_bytes()
        new_data = SWIFTINTERFACE_TARGET.sub(SWIFTINTERFACE_REPLACEMENT, data)
        if new_data != data:
            interface.write_bytes(new_data)
            patched.append(interface)
    return patched


# ----------------------------------------------------------------------------
# Conversion


class FrameworkConverter:
    """Converts one .framework into an .xcframework.

    All work happens in a staging directory next to the framework. The
    finished container is renamed into place and only then is the source
    framework deleted, so a failed conversion leaves the source untouched
    and no partial container behind.

    Args:
        framework: Path to the .framework bundle
        linkage: "static" or "dynamic"; detected from the binary if omitted
        template: Descriptor template (default: built-in iOS template)
        toolchain: Tools to use (default: built from backend)
        backend: Tool backend name used when toolchain is omitted
        dry_run: If True, validate and log the plan without writing

    Example:
        converter = FrameworkConverter("Pods/Foo/Foo.framework")
        converter.process()
    """

    def __init__(
        self,
        framework: Pathlike,
        linkage: "str | Linkage | None" = None,
        template: Pathlike | None = None,
        toolchain: Toolchain | None = None,
        backend: str = DEFAULT_BACKEND,
        dry_run: bool = False,
    ):
        self.framework = Path(framework)
        self.xcframework = self.framework.with_suffix(XCFRAMEWORK_EXT)
        self.linkage = Linkage.parse(linkage) if linkage else None
        self.template = Path(template) if template else None
        self.toolchain = toolchain or Toolchain.for_backend(backend)
        self.dry_run = dry_run
        self.pruner = ArchitecturePruner(self.toolchain.fat)
        self.log = logging.getLogger(self.__class__.__name__)

    def validate(self) -> tuple[XCFrameworkDescriptor, Linkage]:
        """Check inputs before anything is written.

        Returns:
            The descriptor restricted to the binary's architectures, and
            the framework's linkage

        Raises:
            InputError: If any input is unusable
        """
        if not self.framework.exists():
            raise InputError(f"Framework does not exist: {self.framework}")
        if not self.framework.is_dir():
            raise InputError(f"Framework is not a directory: {self.framework}")
        if self.xcframework.exists():
            raise InputError(f"Destination already exists: {self.xcframework}")

        descriptor = load_descriptor(self.template)
        binary = framework_binary(self.framework)
        archs = self.toolchain.fat.architectures(binary)
        linkage = self.linkage or detect_linkage(binary)
        self.log.info(
            "%s: %s library with %s", self.framework.name, linkage.value, ", ".join(archs)
        )
        restricted = descriptor.restricted_to(archs)
        for declared, kept in zip(descriptor.libraries, restricted.libraries):
            dropped = set(declared.supported_architectures) - set(
                kept.supported_architectures
            )
            if dropped:
                self.log.warning(
                    "%s has no %s; slice %s keeps its identifier and declares %s",
                    self.framework.name,
                    ", ".join(sorted(dropped)),
                    kept.identifier,
                    ", ".join(kept.supported_architectures),
                )
        return restricted, linkage

    def convert_slice(self, slc: Slice) -> None:
        """Patch (simulator only) and prune one slice."""
        try:
            if slc.is_simulator:
                if PATCH_ARCH in slc.supported_architectures:
                    PATCHERS[slc.linkage](self.toolchain).patch(slc)
                    for interface in patch_swiftinterfaces(slc.path):
                        self.log.info("Patched %s", interface.name)
                else:
                    self.log.warning(
                        "%s has no %s slice; nothing to patch",
                        slc.identifier,
                        PATCH_ARCH,
                    )
            self.pruner.prune(slc)
        except ConverterError as e:
            e.slice_identifier = slc.identifier
            raise

    def _log_plan(self, descriptor: XCFrameworkDescriptor, linkage: Linkage) -> None:
        self.log.info("[DRY RUN] Would create %s", self.xcframework)
        for lib in descriptor.libraries:
            action = (
                f"patch {PATCH_ARCH} ({linkage.value}) and prune"
                if lib.platform == "ios"
                and lib.platform_variant == "simulator"
                and PATCH_ARCH in lib.supported_architectures
                else "prune"
            )
            self.log.info(
                "[DRY RUN]   %s [%s]: %s",
                lib.identifier,
                ", ".join(lib.supported_architectures),
                action,
            )
        self.log.info("[DRY RUN] Would remove %s", self.framework)

    def process(self) -> Path:
        """Run the conversion.

        Returns:
            Path to the created xcframework
        """
        try:
            descriptor, linkage = self.validate()
            if self.dry_run:
                self._log_plan(descriptor, linkage)
                return self.xcframework

            self.log.info("Creating %s", self.xcframework)
            with tempfile.TemporaryDirectory(
                prefix=f".{self.framework.stem}-", dir=self.framework.parent
            ) as staging:
                staged = synthesize_xcframework(
                    self.framework,
                    descriptor,
                    destination=Path(staging) / self.xcframework.name,
                    remove_source=False,
                )
                for slc in XCFramework(staged, linkage).slices:
                    self.convert_slice(slc)
                if self.xcframework.exists():
                    raise InputError(
                        f"Destination appeared during conversion: {self.xcframework}"
                    )
                staged.rename(self.xcframework)
        except ConverterError as e:
            e.framework = self.framework
            raise

        shutil.rmtree(self.framework)
        self.log.info("Converted %s", self.xcframework)
        return self.xcframework


@dataclass
class ConversionResult:
    """Outcome of converting one framework."""

    framework: Path
    xcframework: Path | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def convert_frameworks(
    frameworks: list[Pathlike],
    jobs: int = 1,
    **options: object,
) -> list[ConversionResult]:
    """Convert every framework that exists, up to jobs at a time.

    Paths that do not exist are skipped. A failing framework is logged and
    reported in its result; the others are still converted.

    Args:
        frameworks: Framework paths
        jobs: Maximum number of concurrent conversions
        **options: Passed to FrameworkConverter

    Returns:
        One result per converted framework, in input order
    """
    if not isinstance(jobs, int) or jobs < 1:
        raise ConfigurationError(f"jobs must be a positive integer, got {jobs!r}")
    log = logging.getLogger("xcconverter")

    paths = []
    for framework in frameworks:
        path = Path(framework)
        if path.exists():
            paths.append(path)
        else:
            log.info("Skipping %s (not present)", path)

    def convert(path: Path) -> ConversionResult:
        try:
            return ConversionResult(path, FrameworkConverter(path, **options).process())
        except (ConverterError, OSError) as e:
            log.error("Failed to convert %s: %s", path, describe_error(e))
            return ConversionResult(path, error=e)
        except Exception as e:
            log.exception("Unexpected error converting %s", path)
            return ConversionResult(path, error=e)

    with concurrent.futures.ThreadPoolExecutor(max_workers=jobs) as pool:
        return list(pool.map(convert, paths))


# ----------------------------------------------------------------------------
# Functional API


def convert_framework(
    framework: Pathlike,
    linkage: str | None = None,
    template: Pathlike | None = None,
    backend: str = DEFAULT_BACKEND,
    dry_run: bool = False,
) -> Path:
    """Convert a .framework into an .xcframework with an arm64 simulator slice.

    This is a convenience function that creates a FrameworkConverter
    instance and calls process() on it.

    Args:
        framework: Path to the .framework bundle
        linkage: "static" or "dynamic" (detected when omitted)
        template: Optional descriptor template plist
        backend: "native" or "xcrun"
        dry_run: If True, only show what would be done

    Returns:
        Path to the created xcframework

    Example:
        xcframework = convert_framework("Pods/Foo/Foo.framework")
    """
    converter = FrameworkConverter(
        framework,
        linkage=linkage,
        template=template,
        backend=backend,
        dry_run=dry_run,
    )
    return converter.process()


# ----------------------------------------------------------------------------
# Command-line interface


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    """Add common options to a parser."""
    parser.add_argument(
        "-b",
        "--backend",
        choices=BACKENDS,
        help=f"binary tool backend (default: {DEFAULT_BACKEND}, or ${ENV_BACKEND})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="enable verbose/debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="disable colored output",
    )


def _cmd_convert(args: argparse.Namespace) -> None:
    """Handle 'convert' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("xcconverter")

    # Load config and apply defaults
    config = load_config(Path(args.config)) if args.config else get_config()
    backend = resolve_backend(args.backend, config)
    template = args.template
    if template is None:
        template = get_config_value(config, "convert", "template")
    linkage = args.linkage
    if linkage is None:
        linkage = get_config_value(config, "convert", "linkage")
    jobs = args.jobs
    if jobs is None:
        jobs = get_config_value(config, "convert", "jobs", 1)

    missing = [f for f in args.frameworks if not Path(f).exists()]
    if missing:
        for framework in missing:
            log.error("Framework does not exist: %s", framework)
        sys.exit(1)

    results = convert_frameworks(
        args.frameworks,
        jobs=jobs,
        linkage=linkage,
        template=template,
        backend=backend,
        dry_run=args.dry_run,
    )
    failed = [r for r in results if not r.ok]
    for result in results:
        if result.ok:
            log.info("Created: %s", result.xcframework)
    if failed:
        log.error("%d of %d conversions failed", len(failed), len(results))
        sys.exit(1)


def _cmd_inspect(args: argparse.Namespace) -> None:
    """Handle 'inspect' subcommand."""
    setup_logging(args.verbose, not args.no_color)
    log = logging.getLogger("xcconverter")

    config = get_config()
    toolchain = Toolchain.for_backend(resolve_backend(args.backend, config))
    xcframework = XCFramework(args.xcframework)

    mismatched = 0
    for slc in xcframework.slices:
        present = toolchain.fat.architectures(slc.binary_path)
        declared = list(slc.supported_architectures)
        consistent = set(present) == set(declared)
        mismatched += not consistent
        log.info(
            "%s: platform=%s variant=%s linkage=%s declared=[%s] present=[%s]"
            " %s=%s%s",
            slc.identifier,
            slc.platform,
            slc.platform_variant or "device",
            slc.linkage.value,
            ", ".join(declared),
            ", ".join(present),
            PATCH_ARCH,
            arm64_target(slc, toolchain) if PATCH_ARCH in present else "-",
            "" if consistent else " MISMATCH",
        )
    if mismatched:
        sys.exit(1)


def main() -> None:
    """Command line interface for xcconverter."""
    try:
        parser = argparse.ArgumentParser(
            prog="xcconverter",
            description=(
                "Convert device-only frameworks into XCFrameworks that also "
                "run on the arm64 iOS simulator."
            ),
            epilog=(
                "Examples:\n"
                "  xcconverter convert Foo.framework\n"
                "  xcconverter convert Pods/*/*.framework -j 4\n"
                "  xcconverter inspect Foo.xcframework\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--version", action="version", version=f"%(prog)s {__version__}"
        )

        subparsers = parser.add_subparsers(
            title="commands",
            dest="command",
            required=True,
        )

        # --- convert subcommand ---
        convert_parser = subparsers.add_parser(
            "convert",
            help="convert .framework bundles into .xcframework bundles",
            description=(
                "Convert .framework bundles into .xcframework bundles with a "
                "patched arm64 simulator slice. Each framework is replaced by "
                "its xcframework.\n\n"
                "Every FRAMEWORK must exist; a missing path fails the run "
                "before anything is converted. (convert_frameworks() in the "
                "library skips missing paths instead.)"
            ),
            epilog=(
                "Examples:\n"
                "  xcconverter convert Foo.framework\n"
                "  xcconverter convert Foo.framework --linkage static\n"
                "  xcconverter convert Foo.framework -t my_template.plist\n"
                "  xcconverter convert A.framework B.framework -j 2 -b xcrun\n"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        convert_parser.add_argument(
            "frameworks",
            nargs="+",
            metavar="FRAMEWORK",
            help="path to a .framework bundle",
        )
        convert_parser.add_argument(
            "-l",
            "--linkage",
            choices=[linkage.value for linkage in Linkage],
            help="framework linkage (default: detected from the binary)",
        )
        convert_parser.add_argument(
            "-t",
            "--template",
            metavar="FILE",
            help="xcframework Info.plist template (default: built-in)",
        )
        convert_parser.add_argument(
            "-j",
            "--jobs",
            type=int,
            metavar="N",
            help="number of frameworks to convert in parallel (default: 1)",
        )
        convert_parser.add_argument(
            "-c",
            "--config",
            metavar="FILE",
            help="config file (default: .xcconverter.toml or xcconverter.toml)",
        )
        convert_parser.add_argument(
            "--dry-run",
            action="store_true",
            help="show what would be done without doing it",
        )
        _add_common_options(convert_parser)
        convert_parser.set_defaults(func=_cmd_convert)

        # --- inspect subcommand ---
        inspect_parser = subparsers.add_parser(
            "inspect",
            help="show the slices of an .xcframework",
            description=(
                "Show each slice of an .xcframework with its declared and "
                "actual architectures. Exits with status 1 on a mismatch."
            ),
        )
        inspect_parser.add_argument(
            "xcframework",
            help="path to the .xcframework bundle",
        )
        _add_common_options(inspect_parser)
        inspect_parser.set_defaults(func=_cmd_inspect)

        args = parser.parse_args()
        args.func(args)

    except ConverterError as e:
        logging.error(describe_error(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.error("Unexpected error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
