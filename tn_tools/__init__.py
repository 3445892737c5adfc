# TN-Fedora-Tools/tn_tools/__init__.py
"""Fedora maintenance tools: NVIDIA driver install/uninstall and full-system updates."""

__version__ = "1.0.0"
