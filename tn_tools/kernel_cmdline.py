# TN-Fedora-Tools/tn_tools/kernel_cmdline.py
"""
Kernel command line editing for both boot loader flavours Fedora ships:
systemd-boot (arguments live in /etc/kernel/cmdline, applied by bootctl and
kernel-install) and GRUB with BLS entries (managed through grubby).
"""

import re
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import system_utils
from tn_tools.logger_utils import app_logger


def contains_word(text: str, word: str) -> bool:
    """Whole-word match (grep -w): word characters may not touch either side."""
    return re.search(rf"(?<!\w){re.escape(word)}(?!\w)", text) is not None


def _normalize_spaces(text: str) -> str:
    return re.sub(r" +", " ", text)


def add_args_to_cmdline(cmdline: str, args: Sequence[str]) -> str:
    """
    Appends every arg not already present as a whole word. Newlines are
    dropped, runs of spaces collapsed and the leading space removed.
    """
    current = cmdline.replace("\n", "")
    for arg in args:
        if not contains_word(current, arg):
            current = f"{current} {arg}"
    return _normalize_spaces(current).lstrip(" ")


def remove_args_from_cmdline(cmdline: str, args: Sequence[str]) -> str:
    """Removes each arg where it stands as its own space-separated token."""
    current = cmdline.replace("\n", "")
    for arg in args:
        # The lookarounds keep the separating spaces, so repeated args all go.
        current = re.sub(rf"(^| ){re.escape(arg)}(?= |$)", " ", current)
    return _normalize_spaces(current).strip(" ")


def uses_systemd_boot(entries_dir: Optional[Path] = None, loader_conf: Optional[Path] = None) -> bool:
    entries_dir = entries_dir or config.SYSTEMD_BOOT_ENTRIES_DIR
    loader_conf = loader_conf or config.SYSTEMD_BOOT_LOADER_CONF
    return entries_dir.is_dir() or loader_conf.is_file()


def _read_cmdline_file(cmdline_file: Path) -> str:
    if not cmdline_file.exists():
        cmdline_file.parent.mkdir(parents=True, exist_ok=True)
        cmdline_file.touch()
    return cmdline_file.read_text(encoding="utf-8")


def _bootctl_update() -> None:
    try:
        system_utils.run_command(["bootctl", "update"], capture_output=True, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        # Fails harmlessly when systemd-boot is already current.
        app_logger.warning(f"bootctl update did not succeed: {e}")


def regenerate_initramfs() -> bool:
    """`dracut --regenerate-all --force`; failures are logged, not raised."""
    try:
        system_utils.run_command(["dracut", "--regenerate-all", "--force"], sudo=True, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        con.print_warning("dracut could not regenerate the initramfs images.")
        app_logger.warning(f"dracut --regenerate-all failed: {e}")
        return False
    return True


def add_kernel_args(
    args: Sequence[str] = config.NVIDIA_KERNEL_ARGS,
    cmdline_file: Optional[Path] = None,
    entries_dir: Optional[Path] = None,
    loader_conf: Optional[Path] = None
) -> bool:
    """
    Makes sure every arg is on the kernel command line, then regenerates the
    initramfs. Returns False if the boot loader could not be updated.
    """
    cmdline_file = cmdline_file or config.KERNEL_CMDLINE_FILE
    ok = True

    if uses_systemd_boot(entries_dir, loader_conf):
        con.print_sub_step(f"systemd-boot detected, updating {cmdline_file}...")
        try:
            updated = add_args_to_cmdline(_read_cmdline_file(cmdline_file), args)
            cmdline_file.write_text(updated + "\n", encoding="utf-8")
            app_logger.info(f"Kernel command line in {cmdline_file}: {updated}")
        except OSError as e:
            con.print_error(f"Could not update {cmdline_file}: {e}")
            app_logger.error(f"Writing {cmdline_file} failed: {e}", exc_info=True)
            ok = False
        else:
            _bootctl_update()
    elif system_utils.command_exists("grubby"):
        con.print_sub_step("Updating kernel arguments for all kernels with grubby...")
        try:
            info = system_utils.run_command(
                ["grubby", "--info=ALL"], capture_output=True, logger=app_logger
            ).stdout or ""
            for arg in args:
                if not contains_word(info, arg):
                    system_utils.run_command(
                        ["grubby", "--update-kernel=ALL", f"--args={arg}"],
                        sudo=True, print_fn_error=con.print_error, logger=app_logger
                    )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            app_logger.error(f"grubby failed to add kernel arguments: {e}")
            ok = False
    else:
        con.print_warning("Neither systemd-boot nor grubby found; kernel arguments were not changed.")
        app_logger.warning("No supported boot loader tooling found for kernel argument changes.")

    regenerate_initramfs()
    return ok


def remove_kernel_args(
    args: Sequence[str] = config.NVIDIA_KERNEL_ARGS,
    cmdline_file: Optional[Path] = None,
    loader_dir: Optional[Path] = None
) -> bool:
    """Strips every arg from the kernel command line. Returns False on a write failure."""
    cmdline_file = cmdline_file or config.KERNEL_CMDLINE_FILE
    loader_dir = loader_dir or config.SYSTEMD_BOOT_DIR

    if loader_dir.is_dir() or cmdline_file.is_file():
        con.print_sub_step(f"Removing NVIDIA arguments from {cmdline_file}...")
        try:
            updated = remove_args_from_cmdline(_read_cmdline_file(cmdline_file), args)
            cmdline_file.write_text(updated + "\n", encoding="utf-8")
            app_logger.info(f"Kernel command line in {cmdline_file}: {updated}")
        except OSError as e:
            con.print_error(f"Could not update {cmdline_file}: {e}")
            app_logger.error(f"Writing {cmdline_file} failed: {e}", exc_info=True)
            return False
        _bootctl_update()
    elif system_utils.command_exists("grubby"):
        con.print_sub_step("Removing NVIDIA arguments for all kernels with grubby...")
        for arg in args:
            try:
                system_utils.run_command(
                    ["grubby", "--update-kernel=ALL", f"--remove-args={arg}"],
                    sudo=True, capture_output=True, logger=app_logger
                )
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                app_logger.warning(f"grubby could not remove '{arg}': {e}")
    return True
