"""Installer collaborator, working directories and installed-tree read-back."""

from .installer import CLIENTS, Installer, build_install_command
from .tree import InstallTree, PackageNode
from .workspace import Workspace, sanitize_name

__all__ = [
    "CLIENTS",
    "InstallTree",
    "Installer",
    "PackageNode",
    "Workspace",
    "build_install_command",
    "sanitize_name",
]
