"""BYOND client version parsing.

Two sources report a version: the game repository's ``buildByond.conf``
(the version the servers require) and ``dd.exe -version`` (the version that
is installed locally).
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

_MAJOR_RE = re.compile(r"BYOND_MAJOR_VERSION=(\d+)")
_MINOR_RE = re.compile(r"BYOND_MINOR_VERSION=(\d+)")


class ByondVersion(BaseModel):
    model_config = ConfigDict(frozen=True)

    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"

    @classmethod
    def parse(cls, value: str) -> ByondVersion:
        """Parse ``"516.1663"``. Raises ValueError on anything else."""
        parts = value.strip().split(".")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):  # noqa: PLR2004
            raise ValueError(f"Invalid version format: {value}")
        return cls(major=int(parts[0]), minor=int(parts[1]))


def parse_build_config(text: str) -> ByondVersion | None:
    """Read BYOND_MAJOR_VERSION / BYOND_MINOR_VERSION from buildByond.conf text."""
    major = _MAJOR_RE.search(text)
    minor = _MINOR_RE.search(text)
    if major is None or minor is None:
        return None
    return ByondVersion(major=int(major.group(1)), minor=int(minor.group(1)))


def parse_version_output(output: str) -> ByondVersion:
    """Parse ``dd.exe -version`` output.

    Expects a line such as
    ``BYOND 5.0 Public (Version 516.1663) on Microsoft Windows``.
    """
    for line in output.splitlines():
        if "BYOND" not in line or "Version" not in line:
            continue
        start = line.find("Version ")
        end = line.find(")", start)
        if start == -1 or end == -1:
            continue
        return ByondVersion.parse(line[start + len("Version ") : end])
    raise ValueError("Could not find BYOND version in output")
