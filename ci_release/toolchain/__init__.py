"""Toolchain provisioning module."""

from ci_release.toolchain.provisioner import ToolchainProvisioner

__all__ = ["ToolchainProvisioner"]
