# TN-Fedora-Tools/tn_tools/rpm_fusion.py

import re
import subprocess
from typing import List

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import system_utils
from tn_tools.logger_utils import app_logger


def release_rpm_urls(base_url: str, fedora_version: str) -> List[str]:
    """URLs of the free and nonfree release RPMs for a Fedora version."""
    return [
        f"{base_url}/{flavor}/fedora/rpmfusion-{flavor}-release-{fedora_version}.noarch.rpm"
        for flavor in ("free", "nonfree")
    ]


def is_enabled_in_repolist(repolist_output: str) -> bool:
    """True when `dnf repolist --enabled` lists an RPM Fusion free repository."""
    return re.search(r"rpmfusion.*free", repolist_output, re.IGNORECASE) is not None


def enable_from_mirrors() -> bool:
    """
    Installs whichever RPM Fusion release packages are missing, from the mirror
    redirector, then refreshes the DNF metadata cache.
    """
    con.print_sub_step("Setting up RPM Fusion repositories...")
    try:
        fedora_version = system_utils.get_fedora_version(logger=app_logger)
        free_url, nonfree_url = release_rpm_urls(config.RPMFUSION_MIRROR_BASE_URL, fedora_version)
        to_install = [
            url for package, url in zip(config.RPMFUSION_RELEASE_PACKAGES, (free_url, nonfree_url))
            if not system_utils.is_package_installed_rpm(package, logger=app_logger)
        ]
    except (subprocess.CalledProcessError, FileNotFoundError, ValueError) as e:
        con.print_error(f"Could not prepare RPM Fusion setup: {e}")
        app_logger.error(f"RPM Fusion setup failed before install: {e}")
        return False

    if to_install:
        con.print_info(f"Detected Fedora version: {fedora_version}")
        if not system_utils.install_dnf_packages(to_install, print_fn_error=con.print_error, logger=app_logger):
            return False
    else:
        con.print_info("RPM Fusion free and non-free repositories are already installed.")

    try:
        system_utils.run_command(["dnf", "-y", "makecache"], sudo=True, print_fn_error=con.print_error, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return True


def enable_if_missing() -> bool:
    """
    Enables RPM Fusion free + nonfree from the primary download host unless an
    RPM Fusion free repository is already enabled, then turns on the four
    release/update repositories.
    """
    try:
        repolist = system_utils.run_command(
            ["dnf", "repolist", "--enabled"], capture_output=True, check=False, logger=app_logger
        ).stdout or ""
    except FileNotFoundError:
        con.print_error("'dnf' command not found. Cannot enable RPM Fusion.")
        return False

    if is_enabled_in_repolist(repolist):
        con.print_info("RPM Fusion already enabled.")
        return True

    con.print_step("Enabling RPM Fusion (free + nonfree)...")
    try:
        fedora_version = system_utils.get_fedora_version(logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError, ValueError) as e:
        con.print_error(f"Could not determine the Fedora version: {e}")
        app_logger.error(f"RPM Fusion: Fedora version lookup failed: {e}")
        return False

    urls = release_rpm_urls(config.RPMFUSION_DOWNLOAD_BASE_URL, fedora_version)
    if not system_utils.install_dnf_packages(urls, print_fn_error=con.print_error, logger=app_logger):
        return False
    system_utils.ensure_packages(["dnf-plugins-core"], print_fn_info=con.print_info, print_fn_error=con.print_error, logger=app_logger)

    try:
        system_utils.run_command(
            ["dnf", "config-manager", "--set-enabled", *config.RPMFUSION_REPOS],
            sudo=True, logger=app_logger
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        # The release RPMs enable these by default; a config-manager hiccup is harmless.
        app_logger.warning(f"dnf config-manager --set-enabled failed: {e}")
    return True
