"""Helpers for replacing the running tool with a newer release."""

from __future__ import annotations

import os
import shutil
import tarfile
import tempfile
from typing import BinaryIO

import semver

_OS_NAMES = {"linux": "Linux", "darwin": "Darwin", "windows": "Windows"}
_ARCH_NAMES = {"amd64": "x86_64", "arm64": "arm64"}


def parse_goos(goos: str) -> str:
    """Map an operating system name to its release archive spelling."""
    return _OS_NAMES.get(goos, "")


def parse_goarch(goarch: str) -> str:
    """Map an architecture name to its release archive spelling."""
    return _ARCH_NAMES.get(goarch, "")


def needs_upgrade(current: str, latest: str) -> bool:
    """Tell whether ``current`` is older than ``latest`` (which may start with v)."""
    latest = latest[1:] if latest.startswith("v") else latest
    return semver.VersionInfo.parse(current) < semver.VersionInfo.parse(latest)


def extract_binary(archive: BinaryIO, name: str, destination: str) -> str | None:
    """Install the member ``name`` of a gzipped tar stream into ``destination``.

    The file is written next to its target first and then renamed over it,
    so a running executable can be replaced. Returns the installed path, or
    None when the archive holds no such member.
    """
    installed: str | None = None
    with tarfile.open(fileobj=archive, mode="r|gz") as tar:
        for member in tar:
            if member.name != name or not member.isfile():
                continue
            source = tar.extractfile(member)
            if source is None:
                continue
            workdir = tempfile.mkdtemp(prefix=".", dir=destination)
            try:
                tmp_path = os.path.join(workdir, name)
                fd = os.open(tmp_path, os.O_CREAT | os.O_RDWR, 0o700)
                with os.fdopen(fd, "wb") as target:
                    shutil.copyfileobj(source, target)
                installed = os.path.join(destination, name)
                os.replace(tmp_path, installed)
            finally:
                shutil.rmtree(workdir, ignore_errors=True)
    return installed