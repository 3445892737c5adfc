# TN-Fedora-Tools/tn_tools/phases/update_all.py
"""
Full-system update: DNF, Flatpak, Snap, pip (user), cargo and npm, then
re-signing of the NVIDIA modules for the newest kernel when Secure Boot is on.

Runs as a regular user and escalates with sudo per command. pip, cargo and
npm operate on the invoking user's packages even when started through sudo.
"""

import os
import subprocess
import sys

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import package_managers
from tn_tools import rpm_fusion
from tn_tools import secure_boot
from tn_tools import system_utils
from tn_tools.config_loader import Settings
from tn_tools.logger_utils import app_logger
from tn_tools.phase_manager import run_steps, run_task

TASK_NAME = "update-all"
BANNER = ("Team-Nocturnal.com Fedora Update Script by XsMagical",)


def require_sudo() -> None:
    """Exits 1 unless sudo exists and the credential check (`sudo -v`) passes."""
    if not system_utils.command_exists("sudo"):
        con.print_error("This script needs 'sudo'. Add your user to the wheel group.", exit_after=True)
    try:
        system_utils.run_command(["sudo", "-v"], logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError):
        con.print_error("Sudo auth failed.", exit_after=True)


def abort_if_atomic() -> None:
    """rpm-ostree systems are updated with `rpm-ostree upgrade`; stop with exit 0."""
    if system_utils.is_atomic_system(logger=app_logger):
        con.print_info("Detected rpm-ostree (atomic) Fedora. Use 'rpm-ostree upgrade' instead.")
        app_logger.info("Atomic Fedora detected, nothing to do.")
        sys.exit(0)


def nvidia_gpu_present() -> bool:
    try:
        proc = system_utils.run_command(["lspci", "-nnk"], capture_output=True, check=False, logger=app_logger)
    except FileNotFoundError:
        app_logger.warning("lspci not found, cannot detect an NVIDIA GPU.")
        return False
    return "nvidia" in (proc.stdout or "").lower()


def akmod_nvidia_installed() -> bool:
    """Any installed package whose name starts with akmod-nvidia (incl. -open)."""
    proc = system_utils.run_command(["rpm", "-qa"], capture_output=True, check=False, logger=app_logger)
    return any(line.startswith(config.NVIDIA_UPDATE_DRIVER_PACKAGE) for line in (proc.stdout or "").splitlines())


def ensure_kernel_devel_for_signing() -> bool:
    """Signing needs the newest kernel's sign-file (kernel-devel) unless kmodsign exists."""
    kernel_version = system_utils.newest_installed_kernel(logger=app_logger)
    if not kernel_version:
        return True
    sign_file = config.KERNEL_SOURCE_ROOT / kernel_version / "scripts" / "sign-file"
    if os.access(sign_file, os.X_OK) or system_utils.command_exists("kmodsign"):
        return True
    con.print_step(f"Installing kernel headers for {kernel_version}...")
    return system_utils.ensure_packages(
        [f"kernel-devel-{kernel_version}"], print_fn_info=con.print_info, print_fn_error=con.print_error, logger=app_logger
    )


def ensure_nvidia_stack() -> bool:
    if not nvidia_gpu_present():
        app_logger.info("No NVIDIA GPU detected, skipping akmod-nvidia.")
        return True
    if akmod_nvidia_installed():
        con.print_info("akmod-nvidia already installed.")
        return True
    con.print_step("NVIDIA GPU detected. Installing akmod-nvidia...")
    ok = system_utils.ensure_packages(
        [config.NVIDIA_UPDATE_DRIVER_PACKAGE], print_fn_info=con.print_info, print_fn_error=con.print_error, logger=app_logger
    )
    if not system_utils.install_dnf_packages(config.NVIDIA_UPDATE_EXTRA_PACKAGES, logger=app_logger):
        app_logger.warning("Optional NVIDIA extras could not be installed.")
    return ok


def ensure_managers(settings: Settings) -> bool:
    """Repositories, base tools, signing tools and (optionally) the NVIDIA driver."""
    ok = True
    if settings.enable_rpmfusion:
        ok = rpm_fusion.enable_if_missing() and ok

    def ensure(packages):
        return system_utils.ensure_packages(
            packages, print_fn_info=con.print_info, print_fn_error=con.print_error, logger=app_logger
        )

    ok = ensure(settings.base_packages) and ok
    if settings.install_optional_managers:
        ok = ensure(config.OPTIONAL_MANAGER_PACKAGES) and ok
    ok = ensure(config.SIGNING_TOOL_PACKAGES) and ok
    ok = ensure_kernel_devel_for_signing() and ok
    if settings.install_nvidia_stack:
        ok = ensure_nvidia_stack() and ok
    return ok


def update_dnf() -> bool:
    con.print_step("Updating via DNF...")
    return system_utils.upgrade_system_dnf(refresh=True, print_fn_error=con.print_error, logger=app_logger)


def resign_nvidia_modules() -> bool:
    """With Secure Boot on, make sure the MOK exists and sign the newest kernel's NVIDIA modules."""
    state = secure_boot.secure_boot_state()
    if "enabled" not in state:
        con.print_info("Secure Boot not enabled (or mokutil missing). Skipping signing.")
        return True

    con.print_step(f"Secure Boot detected: {state}")
    if not secure_boot.ensure_mok_key(config.UPDATE_MOK, verify_enrollment=False):
        return False

    kernel_version = system_utils.newest_installed_kernel(logger=app_logger)
    if not kernel_version:
        con.print_info("No installed kernels found; skipping signing.")
        return True
    con.print_info(f"Newest installed kernel: {kernel_version}")
    return secure_boot.sign_modules_for_kernel(kernel_version, config.UPDATE_MOK)


def run(settings: Settings) -> bool:
    """Runs the whole update. Returns True when every step completed."""
    con.print_banner(BANNER)
    require_sudo()

    user, home = system_utils.get_invoking_user(logger=app_logger)
    abort_if_atomic()

    con.print_step("Preparing system (ensuring repos, tools, and dependencies)...")
    steps = [
        ("Prepare repositories and tools", lambda: ensure_managers(settings)),
    ]
    if settings.install_optional_managers:
        steps.append(("Prepare snapd", package_managers.ensure_snap_ready))
    steps.append(("DNF upgrade", update_dnf))

    failed = run_steps(steps)

    # Presence is checked after preparation, which may have installed flatpak or snapd.
    later_steps = []
    if system_utils.command_exists("flatpak"):
        later_steps.append(("Flatpak update", package_managers.update_flatpak))
    if system_utils.command_exists("snap"):
        later_steps.append(("Snap refresh", package_managers.refresh_snaps))
    if system_utils.command_exists("python3"):
        later_steps.append(("pip user packages", lambda: package_managers.update_pip_user_packages(user, home)))
    if system_utils.command_exists("cargo"):
        later_steps.append(("cargo installs", lambda: package_managers.update_cargo_installs(user, home)))
    if system_utils.command_exists("npm"):
        later_steps.append(("npm global packages", lambda: package_managers.update_npm_globals(user, home)))
    later_steps.append(("Secure Boot module signing", resign_nvidia_modules))
    failed += run_steps(later_steps)

    con.console.line()
    con.print_step_summary(TASK_NAME, failed)
    con.print_success("[bold]All updates complete![/]")
    return not failed


def main():
    run_task(TASK_NAME, run)


if __name__ == "__main__":
    main()
