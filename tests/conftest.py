"""Pytest configuration and fixtures."""

import json

import httpx
import pytest

from depsync.config import ValidationConfig

SAMPLE_DESCRIPTION = """\
Package: myanalysis
Title: Analysis Compendium
Version: 0.1.0
Authors@R: person("Ada", "Lovelace", role = c("aut", "cre"))
Description: Reproducible analysis.
License: MIT
Imports:
    dplyr (>= 1.1.0),
    ggplot2
Suggests:
    testthat (>= 3.0.0)
Encoding: UTF-8
"""

SAMPLE_LOCK = {
    "R": {
        "Version": "4.3.2",
        "Repositories": [{"Name": "CRAN", "URL": "https://cloud.r-project.org"}],
    },
    "Packages": {
        "dplyr": {
            "Package": "dplyr",
            "Version": "1.1.4",
            "Source": "Repository",
            "Repository": "CRAN",
            "Hash": "fedd9d00c2944ff00a0e2696ccf048ec",
        },
        "ggplot2": {
            "Package": "ggplot2",
            "Version": "3.4.4",
            "Source": "Repository",
            "Repository": "CRAN",
            "Hash": "313d31eff2274ecf4c1d3581db7241f9",
        },
        "rlang": {
            "Package": "rlang",
            "Version": "1.1.2",
            "Source": "Repository",
            "Repository": "CRAN",
        },
    },
}


@pytest.fixture
def sample_description():
    """Sample DESCRIPTION content for testing."""
    return SAMPLE_DESCRIPTION


@pytest.fixture
def sample_lock_text():
    """Sample renv.lock content for testing."""
    return json.dumps(SAMPLE_LOCK, indent=2) + "\n"


@pytest.fixture
def fast_config():
    """Configuration without backoff delays."""
    return ValidationConfig(retry_base_delay=0.0, max_retries=3, lock_timeout=1.0)


@pytest.fixture
def make_project(tmp_path, sample_description, sample_lock_text):
    """Create a project tree: DESCRIPTION, renv.lock and R sources."""

    def _make(files=None, description=None, lock_text=None):
        root = tmp_path / "project"
        root.mkdir(exist_ok=True)
        (root / "DESCRIPTION").write_text(description or sample_description)
        (root / "renv.lock").write_text(lock_text if lock_text is not None else sample_lock_text)
        for relative, content in (files or {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return root

    return _make


@pytest.fixture
def registry_transport():
    """Build a fake CRAN registry.

    ``versions`` maps package name to the version it resolves to; names in
    ``timeouts`` always time out; anything else is a 404.
    """

    def _build(versions=None, timeouts=(), calls=None):
        versions = versions or {}

        def handler(request: httpx.Request) -> httpx.Response:
            name = request.url.path.strip("/")
            if calls is not None:
                calls.append(name)
            if name in timeouts:
                raise httpx.ReadTimeout("timed out", request=request)
            if name in versions:
                return httpx.Response(
                    200,
                    json={"Package": name, "Version": versions[name], "Repository": "CRAN"},
                )
            return httpx.Response(404, json={"error": "not_found"})

        return httpx.MockTransport(handler)

    return _build
