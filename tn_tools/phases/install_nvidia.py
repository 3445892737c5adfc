# TN-Fedora-Tools/tn_tools/phases/install_nvidia.py
"""
Installs the proprietary NVIDIA driver from RPM Fusion and prepares Secure
Boot signing through akmods.

With Secure Boot on, a MOK is created under /etc/pki/akmods, where akmods
picks it up to sign every module it builds, and queued for enrolment.
"""

import subprocess
from pathlib import Path
from typing import Optional

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import kernel_cmdline
from tn_tools import rpm_fusion
from tn_tools import secure_boot
from tn_tools import system_utils
from tn_tools.config_loader import Settings
from tn_tools.logger_utils import app_logger
from tn_tools.phase_manager import run_steps, run_task

TASK_NAME = "install-nvidia"
BANNER = (
    "install-nvidia - NVIDIA Driver Install Script",
    "by XsMagical | https://github.com/XsMagical/",
)


def swap_ffmpeg_if_needed() -> bool:
    """Replaces Fedora's ffmpeg-free with RPM Fusion's full ffmpeg when present."""
    try:
        if not system_utils.is_package_installed_rpm("ffmpeg-free", logger=app_logger):
            return True
    except FileNotFoundError:
        return True
    con.print_sub_step("Swapping ffmpeg-free for ffmpeg...")
    if not system_utils.swap_dnf_packages("ffmpeg-free", "ffmpeg", allow_erasing=True, logger=app_logger):
        con.print_warning("Could not swap ffmpeg-free for ffmpeg; continuing.")
    return True


def install_bits(settings: Settings) -> bool:
    """Kernel headers for the running kernel, the toolchain akmods needs, and the driver packages."""
    packages = [f"kernel-devel-{system_utils.get_running_kernel()}"] + list(settings.nvidia_packages)
    con.print_step("Installing NVIDIA driver packages...")
    return system_utils.install_dnf_packages(packages, print_fn_error=con.print_error, logger=app_logger)


def blacklist_nouveau(blacklist_file: Optional[Path] = None) -> bool:
    blacklist_file = blacklist_file or config.NOUVEAU_BLACKLIST_FILE
    con.print_sub_step(f"Blacklisting nouveau in {blacklist_file}...")
    try:
        blacklist_file.parent.mkdir(parents=True, exist_ok=True)
        blacklist_file.write_text(config.NOUVEAU_BLACKLIST_CONTENT, encoding="utf-8")
    except OSError as e:
        con.print_error(f"Could not write {blacklist_file}: {e}")
        app_logger.error(f"Writing {blacklist_file} failed: {e}", exc_info=True)
        return False
    return True


def ensure_mok_key_if_needed(secure_boot_on: bool) -> bool:
    if not secure_boot_on:
        con.print_dim("Secure Boot is disabled, skipping MOK key & signing setup.")
        return True
    return secure_boot.ensure_mok_key(config.AKMODS_MOK, verify_enrollment=True)


def build_modules() -> bool:
    """akmods build for the running kernel, then depmod and an initramfs rebuild."""
    con.print_step("Building NVIDIA kernel modules...")
    secure_boot.build_akmods(system_utils.get_running_kernel())
    try:
        system_utils.run_command(["depmod", "-a"], logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.warning(f"depmod -a failed: {e}")
    kernel_cmdline.regenerate_initramfs()
    return True


def enable_services() -> bool:
    for service in config.NVIDIA_SERVICES:
        try:
            system_utils.run_command(
                ["systemctl", "enable", "--now", service], capture_output=True, logger=app_logger
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            # nvidia-powerd only exists on supported laptops.
            app_logger.info(f"Could not enable {service}: {e}")
    return True


def run(settings: Settings) -> bool:
    """Runs the whole install. Returns True when every step completed."""
    con.print_banner(BANNER)
    if not system_utils.is_root():
        con.print_error("Run as root (sudo).", exit_after=True)

    secure_boot_on = secure_boot.is_secure_boot_enabled()
    if secure_boot_on:
        con.print_info("Secure Boot: ENABLED, will set up signing.")
    else:
        con.print_info("Secure Boot: DISABLED, installing unsigned NVIDIA modules.")
    app_logger.info(f"Secure Boot enabled: {secure_boot_on}")

    failed = run_steps([
        ("Enable RPM Fusion", rpm_fusion.enable_from_mirrors),
        ("Swap ffmpeg-free for ffmpeg", swap_ffmpeg_if_needed),
        ("Install NVIDIA packages", lambda: install_bits(settings)),
        ("Blacklist nouveau", blacklist_nouveau),
        ("Set kernel command line", kernel_cmdline.add_kernel_args),
        ("Secure Boot MOK key", lambda: ensure_mok_key_if_needed(secure_boot_on)),
        ("Build kernel modules", build_modules),
        ("Enable NVIDIA services", enable_services),
    ])

    con.console.line()
    con.print_success("Done.")
    con.print_step_summary(TASK_NAME, failed)
    if secure_boot_on:
        con.print_info("🔁 Reboot and complete [bold]Enroll MOK[/] to load the signed NVIDIA modules.")
    else:
        con.print_info("🔁 Reboot to start using the NVIDIA driver.")
    return not failed


def main():
    run_task(TASK_NAME, run)


if __name__ == "__main__":
    main()
