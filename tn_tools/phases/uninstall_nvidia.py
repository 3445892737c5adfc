# TN-Fedora-Tools/tn_tools/phases/uninstall_nvidia.py
"""Removes the NVIDIA driver stack and reverts the system to Nouveau."""

import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import kernel_cmdline
from tn_tools import system_utils
from tn_tools.config_loader import Settings
from tn_tools.logger_utils import app_logger
from tn_tools.phase_manager import run_steps, run_task

TASK_NAME = "uninstall-nvidia"
BANNER = (
    "uninstall-nvidia - Revert to Nouveau (by XsMagical)",
    "https://github.com/XsMagical/",
)


def stop_services() -> bool:
    con.print_step("Stopping NVIDIA services...")
    for service in config.NVIDIA_SERVICES:
        try:
            system_utils.run_command(
                ["systemctl", "disable", "--now", service], capture_output=True, logger=app_logger
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            app_logger.info(f"Could not disable {service}: {e}")
    return True


def remove_packages() -> bool:
    con.print_step("Removing NVIDIA packages...")
    try:
        system_utils.run_command(
            ["dnf", "-y", "remove", *config.NVIDIA_REMOVE_PATTERNS],
            sudo=True, print_fn_error=con.print_error, logger=app_logger
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.error(f"dnf remove of NVIDIA packages failed: {e}")
        return False
    return True


def remove_nouveau_blacklist(blacklist_file: Optional[Path] = None) -> bool:
    blacklist_file = blacklist_file or config.NOUVEAU_BLACKLIST_FILE
    con.print_step("Removing Nouveau blacklist (if any)...")
    try:
        blacklist_file.unlink()
        app_logger.info(f"Removed {blacklist_file}")
    except FileNotFoundError:
        app_logger.info(f"{blacklist_file} not present, nothing to remove.")
    except OSError as e:
        con.print_error(f"Could not remove {blacklist_file}: {e}")
        app_logger.error(f"Removing {blacklist_file} failed: {e}")
        return False
    return True


def revert_kernel_cmdline() -> bool:
    con.print_step("Reverting kernel command line...")
    return kernel_cmdline.remove_kernel_args()


def regenerate_boot_files() -> bool:
    con.print_step("Regenerating initramfs and depmod...")
    kernel_cmdline.regenerate_initramfs()
    try:
        system_utils.run_command(["depmod", "-a"], logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.warning(f"depmod -a failed: {e}")
    return True


def print_mok_cleanup_hint() -> None:
    con.console.line()
    con.print_panel(
        "If you enrolled a custom MOK for signed NVIDIA modules and want to remove it:\n"
        "  [bold]sudo mokutil --reset[/]    # then reboot and confirm in the blue menu",
        title="MOK cleanup (optional)",
        style="blue"
    )


def run(settings: Settings) -> bool:
    """Runs the whole revert. Returns True when every step completed."""
    con.print_banner(BANNER)
    if not system_utils.is_root():
        con.print_error(f"Run as root: sudo {os.path.basename(sys.argv[0]) or TASK_NAME}", exit_after=True)

    failed = run_steps([
        ("Stop NVIDIA services", stop_services),
        ("Remove NVIDIA packages", remove_packages),
        ("Remove Nouveau blacklist", remove_nouveau_blacklist),
        ("Revert kernel command line", revert_kernel_cmdline),
        ("Regenerate initramfs and module map", regenerate_boot_files),
    ])

    print_mok_cleanup_hint()
    con.print_step_summary(TASK_NAME, failed)
    con.print_success("[bold]Done. Reboot to load the open-source Nouveau driver.[/]")
    return not failed


def main():
    run_task(TASK_NAME, run)


if __name__ == "__main__":
    main()
