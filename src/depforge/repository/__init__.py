"""Repositories: values, layouts and the artifact locator (``depforge.repository.locator``)."""

from .layout import artifact_url, descriptor_url, render_ivy_pattern
from .models import (Credentials, IvyLayout, MavenLayout, PublishRepository, Repository,
                     RepositorySet)

__all__ = [
    "Credentials",
    "IvyLayout",
    "MavenLayout",
    "PublishRepository",
    "Repository",
    "RepositorySet",
    "artifact_url",
    "descriptor_url",
    "render_ivy_pattern",
]
