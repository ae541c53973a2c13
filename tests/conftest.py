"""Shared fixtures: device frameworks as CocoaPods ships them."""

from pathlib import Path

import pytest

from binaries import (
    MH_DYLIB,
    OBJECT_NAMES,
    build_archive,
    build_fat,
    build_image,
    build_stub,
    encode_version,
    make_framework,
)

ARM64_INTERFACE = (
    "// swift-interface-format-version: 1.0\n"
    "// swift-module-flags: -target arm64-apple-ios13.0 -enable-library-evolution\n"
    "import Swift\n"
)
X86_64_INTERFACE = (
    "// swift-interface-format-version: 1.0\n"
    "// swift-module-flags: -target x86_64-apple-ios13.0-simulator\n"
    "import Swift\n"
)


@pytest.fixture
def dylib_image() -> bytes:
    """arm64 dylib targeting iOS 13.0 with room for a larger version command."""
    return build_image(
        filetype=MH_DYLIB,
        minos=encode_version(13),
        sdk=encode_version(14, 2),
        padding=32,
    )


@pytest.fixture
def dynamic_binary(dylib_image: bytes) -> bytes:
    return build_fat(
        [
            ("armv7", build_stub("armv7", MH_DYLIB)),
            ("arm64", dylib_image),
            ("x86_64", build_stub("x86_64", MH_DYLIB)),
        ]
    )


@pytest.fixture
def dynamic_framework(tmp_path: Path, dynamic_binary: bytes) -> Path:
    return make_framework(
        tmp_path,
        "Dyn",
        dynamic_binary,
        interfaces={
            "Modules/Dyn.swiftmodule/arm64-apple-ios.swiftinterface": ARM64_INTERFACE,
            "Modules/Dyn.swiftmodule/x86_64-apple-ios-simulator.swiftinterface": (
                X86_64_INTERFACE
            ),
        },
    )


@pytest.fixture
def arm64_archive() -> bytes:
    """arm64 static archive with three objects targeting iOS 12.0."""
    return build_archive(
        [
            (name, build_image(minos=encode_version(12), sdk=encode_version(14, 2)))
            for name in OBJECT_NAMES
        ]
    )


@pytest.fixture
def static_binary(arm64_archive: bytes) -> bytes:
    return build_fat(
        [
            ("armv7", build_archive([(n, build_stub("armv7")) for n in OBJECT_NAMES])),
            ("arm64", arm64_archive),
            (
                "x86_64",
                build_archive([(n, build_stub("x86_64")) for n in OBJECT_NAMES]),
            ),
        ]
    )


@pytest.fixture
def static_framework(tmp_path: Path, static_binary: bytes) -> Path:
    return make_framework(tmp_path, "Stat", static_binary)
