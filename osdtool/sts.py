"""Extracting and comparing the STS policies of release versions."""

from __future__ import annotations

import subprocess
from typing import Sequence

import semver

RELEASE_IMAGE = "quay.io/openshift-release-dev/ocp-release"
POLICY_DIR_PREFIX = "/tmp/crs-"

_MISSING_VERSIONS = {
    1: "Release version is required for policy command",
    2: "Previous and new release version is required for policy-diff command",
}


class UsageError(Exception):
    """The command was called with wrong arguments."""


def validate_versions(versions: Sequence[str], expected: int) -> list[str]:
    """Check that exactly ``expected`` semantic versions were given."""
    if len(versions) != expected:
        raise UsageError(
            _MISSING_VERSIONS.get(
                expected, f"{expected} release versions are required"
            )
        )
    for version in versions:
        try:
            semver.VersionInfo.parse(version)
        except (ValueError, TypeError) as exc:
            raise UsageError(
                f"Release version must satisfy the semantic version format: {exc}"
            ) from exc
    return list(versions)


def policy_dir(version: str) -> str:
    """The directory the policies of ``version`` are extracted to."""
    return POLICY_DIR_PREFIX + version


def extract_command(version: str) -> str:
    """The shell command extracting the AWS credentials requests of ``version``."""
    return (
        f"oc adm release extract {RELEASE_IMAGE}:{version}-x86_64 "
        f"--credentials-requests --cloud=aws --to={policy_dir(version)}"
    )


def extract_policies(version: str) -> str:
    """Extract the policy files of ``version``; return their directory."""
    subprocess.run(
        ["bash", "-c", extract_command(version)],
        capture_output=True,
        text=True,
        check=True,
    )
    return policy_dir(version)


def policy(version: str) -> str:
    """Save the STS policy files of a release and report where they are."""
    (version,) = validate_versions([version], 1)
    directory = extract_policies(version)
    message = f"OCP STS policy files have been saved in {directory} directory"
    print(message)
    return message


def policy_diff(old_version: str, new_version: str) -> str:
    """Show the difference between the STS policies of two releases."""
    old_version, new_version = validate_versions([old_version, new_version], 2)
    for version in (old_version, new_version):
        extract_policies(version)
    diff = f"diff {policy_dir(old_version)} {policy_dir(new_version)}"
    result = subprocess.run(["bash", "-c", diff], capture_output=True, text=True)
    output = result.stdout or ""
    print(output)
    return output