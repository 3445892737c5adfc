# TN-Fedora-Tools/tn_tools/secure_boot.py
"""
Secure Boot helpers: state detection, Machine Owner Key (MOK) creation and
enrolment, and signing of NVIDIA kernel modules with that key.

Enrolment is two-stage: `mokutil --import` only queues the certificate. The
operator confirms it in the blue MokManager screen on the next boot, using
the one-time password set during the import.
"""

import os
import re
import subprocess
from pathlib import Path
from typing import List, Optional

from rich.markup import escape

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import system_utils
from tn_tools.config import MokKeyPair
from tn_tools.logger_utils import app_logger


def secure_boot_state() -> str:
    """Lower-cased `mokutil --sb-state` output, or "" when mokutil is unavailable."""
    if not system_utils.command_exists("mokutil"):
        return ""
    try:
        proc = system_utils.run_command(["mokutil", "--sb-state"], capture_output=True, check=False, logger=app_logger)
    except FileNotFoundError:
        return ""
    return (proc.stdout or "").strip().lower()


def is_secure_boot_enabled() -> bool:
    return "enabled" in secure_boot_state()


# --- MOK key material ---

def _file_has_content(path: Path) -> bool:
    """
    True when path is a non-empty file. The key directories are root-only,
    so a non-root caller asks `sudo test -s` instead of stat'ing directly.
    """
    if system_utils.is_root():
        return path.is_file() and path.stat().st_size > 0
    return system_utils.command_succeeds(["test", "-s", str(path)], sudo=True, logger=app_logger)


def mok_key_present(mok: MokKeyPair) -> bool:
    """Both the private key and the DER certificate exist and are non-empty."""
    return _file_has_content(mok.private_key) and _file_has_content(mok.cert_der)


def generate_mok_key(mok: MokKeyPair) -> bool:
    """Creates a self-signed RSA-4096 key pair and its DER copy at the preset's paths."""
    app_logger.info(f"Generating MOK key pair: key={mok.private_key} der={mok.cert_der} subject={mok.subject}")
    req_cmd = ["openssl", "req", "-new", "-x509", "-newkey", "rsa:4096"]
    if mok.digest:
        req_cmd.append(mok.digest)
    req_cmd += [
        "-days", str(mok.days), "-subj", mok.subject,
        "-keyout", str(mok.private_key), "-out", str(mok.cert_pem), "-nodes",
    ]

    try:
        system_utils.run_command(
            ["mkdir", "-p", str(mok.key_dir), str(mok.cert_dir)], sudo=True, logger=app_logger
        )
        if mok.key_dir_mode:
            system_utils.run_command(["chmod", mok.key_dir_mode, str(mok.key_dir)], sudo=True, logger=app_logger)
        system_utils.run_command(req_cmd, sudo=True, capture_output=True, print_fn_error=con.print_error, logger=app_logger)
        system_utils.run_command(["chmod", "600", str(mok.private_key)], sudo=True, logger=app_logger)
        system_utils.run_command(
            ["openssl", "x509", "-in", str(mok.cert_pem), "-outform", "DER", "-out", str(mok.cert_der)],
            sudo=True, capture_output=True, print_fn_error=con.print_error, logger=app_logger
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        con.print_error(f"Could not create the MOK key pair: {e}")
        app_logger.error(f"MOK key generation failed: {e}")
        return False
    return True


def is_mok_enrolled(mok: MokKeyPair) -> bool:
    """True when `mokutil --list-enrolled` already shows the preset's common name."""
    try:
        proc = system_utils.run_command(["mokutil", "--list-enrolled"], capture_output=True, check=False, logger=app_logger)
    except FileNotFoundError:
        return False
    return mok.common_name in (proc.stdout or "")


def import_mok(mok: MokKeyPair) -> bool:
    """
    Queues the DER certificate for enrolment. mokutil asks for a one-time
    password on the terminal, so output is not captured.
    """
    try:
        system_utils.run_command(["mokutil", "--import", str(mok.cert_der)], sudo=True, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        con.print_warning(f"mokutil --import did not complete: {e}")
        app_logger.warning(f"mokutil --import {mok.cert_der} failed: {e}")
        return False
    return True


def ensure_mok_key(mok: MokKeyPair, verify_enrollment: bool = True) -> bool:
    """
    Makes sure a MOK key pair exists and is queued for enrolment.

    Args:
        mok: Which key preset to use.
        verify_enrollment: Check `mokutil --list-enrolled` and import whenever the
                           certificate is not enrolled. When False, the
                           certificate is only imported right after it is created.

    Returns:
        bool: False when key generation failed.
    """
    created = False
    if not mok_key_present(mok):
        con.print_info(f"Creating MOK keypair in {mok.key_dir} (one-time, valid {mok.days // 365}y)...")
        if not generate_mok_key(mok):
            return False
        created = True
    else:
        app_logger.info(f"MOK key pair already present at {mok.private_key}")

    if verify_enrollment:
        if is_mok_enrolled(mok):
            app_logger.info(f"MOK '{mok.common_name}' already enrolled.")
            return True
        con.print_panel(
            "Enrolling MOK cert... set a password now; confirm it on next boot (Enroll MOK).",
            title="Secure Boot", style="yellow"
        )
        if import_mok(mok):
            con.print_info("[blue]On reboot: Enroll MOK → Continue → Yes → enter the password you set.[/]")
    elif created:
        con.print_info("Importing MOK cert (enroll on next reboot at the blue MOK screen)...")
        import_mok(mok)
    return True


# --- Module signing ---

def find_sign_tool(
    kernel_version: str,
    source_root: Optional[Path] = None,
    modules_root: Optional[Path] = None
) -> Optional[str]:
    """
    The kernel's sign-file (kernel-devel tree, then the module build link),
    else kmodsign from PATH. None when nothing can sign.
    """
    source_root = source_root or config.KERNEL_SOURCE_ROOT
    modules_root = modules_root or config.KERNEL_MODULES_ROOT
    candidates = (
        source_root / kernel_version / "scripts" / "sign-file",
        modules_root / kernel_version / "build" / "scripts" / "sign-file",
    )
    for candidate in candidates:
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return str(candidate)
    if system_utils.command_exists("kmodsign"):
        return "kmodsign"
    return None


def find_nvidia_modules(kernel_version: str, modules_root: Optional[Path] = None) -> List[Path]:
    """Every nvidia*.ko* file (compressed or not) under /lib/modules/<kver>."""
    module_dir = (modules_root or config.KERNEL_MODULES_ROOT) / kernel_version
    if not module_dir.is_dir():
        return []
    return sorted(p for p in module_dir.rglob(config.NVIDIA_MODULE_GLOB) if p.is_file())


def parse_modinfo_signer(modinfo_output: str) -> str:
    match = re.search(r"^signer:\s*(.*)$", modinfo_output, re.MULTILINE)
    return match.group(1).strip() if match else ""


def module_signer(module: Path) -> Optional[str]:
    """Signer reported by modinfo, "" if unsigned, None if modinfo is missing."""
    if not system_utils.command_exists("modinfo"):
        return None
    proc = system_utils.run_command(["modinfo", str(module)], capture_output=True, check=False, logger=app_logger)
    return parse_modinfo_signer(proc.stdout or "")


def build_akmods(kernel_version: str) -> bool:
    """`akmods --force --kernels <kver>`; failures are logged, not raised."""
    try:
        system_utils.run_command(["akmods", "--force", "--kernels", kernel_version], sudo=True, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        con.print_warning(f"akmods did not finish cleanly for {kernel_version}.")
        app_logger.warning(f"akmods --force --kernels {kernel_version} failed: {e}")
        return False
    return True


def sign_modules_for_kernel(
    kernel_version: str,
    mok: MokKeyPair,
    source_root: Optional[Path] = None,
    modules_root: Optional[Path] = None
) -> bool:
    """
    Rebuilds the akmods for kernel_version and signs every NVIDIA module found
    with the MOK. Returns False only when a signing command failed.
    """
    sign_tool = find_sign_tool(kernel_version, source_root, modules_root)
    if sign_tool is None:
        con.print_warning("sign-file/kmodsign not found; skipping signing.")
        app_logger.warning(f"No sign-file or kmodsign available for {kernel_version}.")
        return True
    app_logger.info(f"Signing tool for {kernel_version}: {sign_tool}")

    if system_utils.command_exists("akmods"):
        con.print_step(f"Building akmods for {kernel_version} (may take a few minutes)...")
        build_akmods(kernel_version)

    modules = find_nvidia_modules(kernel_version, modules_root)
    module_dir = (modules_root or config.KERNEL_MODULES_ROOT) / kernel_version
    if not modules:
        con.print_info(f"No NVIDIA modules under {module_dir}. If using akmod-nvidia, they may appear after reboot.")
        return True

    con.print_step(f"Signing NVIDIA modules for {kernel_version}...")
    all_signed = True
    for module in modules:
        try:
            system_utils.run_command(
                [sign_tool, config.SIGN_HASH_ALGORITHM, str(mok.private_key), str(mok.cert_der), str(module)],
                sudo=True, capture_output=True, print_fn_error=con.print_error, logger=app_logger
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            app_logger.error(f"Signing {module} failed: {e}")
            all_signed = False
            continue
        signer = module_signer(module)
        if signer is None:
            con.print_sub_step(f"Signed: {module.name}")
        else:
            con.print_sub_step(f"Signed: {module.name} " + escape(f"[signer: {signer or 'unknown'}]"))

    if all_signed:
        con.print_success("Module signing complete.")
    else:
        con.print_warning("Some NVIDIA modules could not be signed; they will not load with Secure Boot on.")
    return all_signed
