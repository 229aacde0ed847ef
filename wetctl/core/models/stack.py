"""
Stack model — bundles of third-party charts deployed as one target.

Stacks (``monitoring``, ``platform``) go through the package installer
rather than the Layering Engine: the chart owns its own templates, we
only pass a name, a version, and value overrides.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChartRelease(BaseModel):
    """A single chart install."""

    name: str
    chart: str
    repo_name: str = ""
    repo_url: str = ""
    version: str = ""
    namespace: str
    values_file: str = ""
    set_values: dict[str, str] = Field(default_factory=dict)
    optional: bool = False


class Stack(BaseModel):
    """A named group of chart releases plus plain manifests applied after them."""

    name: str
    description: str = ""
    releases: list[ChartRelease] = Field(default_factory=list)
    manifests: list[str] = Field(default_factory=list)
