# TN-Fedora-Tools/tn_tools/package_managers.py
"""Update steps for the non-DNF package managers: Flatpak, Snap, pip, cargo and npm."""

import json
import re
import subprocess
from pathlib import Path
from typing import List

from tn_tools import config
from tn_tools import console_output as con
from tn_tools import system_utils
from tn_tools.logger_utils import app_logger


# --- Flatpak ---

def find_eol_flatpak_apps(
    list_output: str,
    runtime: str = config.FLATPAK_EOL_RUNTIME,
    branch: str = config.FLATPAK_EOL_BRANCH
) -> List[str]:
    """
    Application IDs from `flatpak list --app --columns=application,runtime`
    whose line names the end-of-life runtime branch.
    """
    pattern = re.compile(rf"{re.escape(runtime)}.*{re.escape(branch)}")
    apps = []
    for line in list_output.splitlines():
        if pattern.search(line):
            fields = line.split()
            if fields:
                apps.append(fields[0])
    return apps


def update_flatpak() -> bool:
    """Updates apps and runtimes, prunes unused runtimes, warns about EOL runtimes."""
    ok = True
    con.print_step("Updating Flatpak apps and runtimes...")
    try:
        system_utils.run_command(["flatpak", "update", "-y"], logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.error(f"flatpak update failed: {e}")
        ok = False

    con.print_step("Pruning unused Flatpak runtimes...")
    try:
        system_utils.run_command(["flatpak", "uninstall", "--unused", "-y"], logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.error(f"flatpak uninstall --unused failed: {e}")
        ok = False

    warn_eol_flatpak_runtimes()
    return ok


def warn_eol_flatpak_runtimes() -> None:
    try:
        proc = system_utils.run_command(
            ["flatpak", "list", "--app", "--columns=application,runtime"],
            capture_output=True, check=False, logger=app_logger
        )
    except FileNotFoundError:
        return
    eol_apps = find_eol_flatpak_apps(proc.stdout or "")
    if eol_apps:
        runtime = f"{config.FLATPAK_EOL_RUNTIME}//{config.FLATPAK_EOL_BRANCH}"
        con.print_warning(f"These Flatpak apps still use EOL runtime {runtime}:")
        for app in eol_apps:
            con.print_sub_step(app)
        con.print_info(f"→ Update or switch source (RPM/newer Flatpak) to move off {config.FLATPAK_EOL_BRANCH}.")


# --- Snap ---

def snap_seeded() -> bool:
    """`snap wait system seed.loaded` returns once snapd finished first-boot seeding."""
    return system_utils.command_succeeds(["snap", "wait", "system", "seed.loaded"], sudo=True, logger=app_logger)


def ensure_snap_ready() -> bool:
    """
    Installs and enables snapd when snap is missing, then waits for seeding,
    restarting snapd once if the first wait fails.
    """
    if not system_utils.command_exists("snap"):
        con.print_step("Installing and enabling snapd...")
        if not system_utils.ensure_packages(["snapd"], print_fn_info=con.print_info, print_fn_error=con.print_error, logger=app_logger):
            return False
        try:
            system_utils.run_command(["systemctl", "enable", "--now", "snapd.socket"], sudo=True, logger=app_logger)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            app_logger.warning(f"Could not enable snapd.socket: {e}")
        if not (config.SNAP_SYMLINK.exists() or config.SNAP_SYMLINK.is_symlink()):
            try:
                system_utils.run_command(
                    ["ln", "-s", str(config.SNAP_TARGET), str(config.SNAP_SYMLINK)], sudo=True, logger=app_logger
                )
            except (subprocess.CalledProcessError, FileNotFoundError) as e:
                app_logger.warning(f"Could not create {config.SNAP_SYMLINK} symlink: {e}")

    if system_utils.command_exists("snap") and not snap_seeded():
        # First-run seeding sometimes stalls until snapd is restarted.
        app_logger.info("snapd not seeded, restarting snapd units and waiting again.")
        try:
            system_utils.run_command(["systemctl", "restart", *config.SNAPD_SERVICES], sudo=True, logger=app_logger)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            app_logger.warning(f"Restarting snapd failed: {e}")
        snap_seeded()
    return True


def refresh_snaps() -> bool:
    con.print_step("Updating Snap packages...")
    if not snap_seeded():
        con.print_info("Snapd not seeded yet; skipping snap refresh this run.")
        return True
    try:
        system_utils.run_command(["snap", "refresh"], sudo=True, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.error(f"snap refresh failed: {e}")
        return False
    return True


# --- pip ---

def parse_outdated_pip(json_text: str) -> List[str]:
    """Package names from `pip list --outdated --format json`."""
    if not json_text.strip():
        return []
    return [entry["name"] for entry in json.loads(json_text)]


def update_pip_user_packages(user: str, home: Path) -> bool:
    """Upgrades every outdated `pip --user` package of the invoking user, one by one."""
    con.print_step("Updating Python user packages (pip)...")
    try:
        proc = system_utils.run_command(
            ["python3", "-m", "pip", "list", "--outdated", "--format", "json", "--user"],
            run_as_user=user, user_home=home, capture_output=True, logger=app_logger
        )
        outdated = parse_outdated_pip(proc.stdout or "")
    except (subprocess.CalledProcessError, FileNotFoundError, ValueError, KeyError) as e:
        con.print_warning(f"Could not list outdated pip packages: {e}")
        app_logger.warning(f"pip list --outdated failed: {e}")
        return False

    if not outdated:
        con.print_info("No user pip packages to update.")
        return True

    ok = True
    for name in outdated:
        try:
            system_utils.run_command(
                ["python3", "-m", "pip", "install", "-U", "--user", name],
                run_as_user=user, user_home=home, logger=app_logger
            )
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            con.print_warning(f"pip could not upgrade '{name}'.")
            app_logger.warning(f"pip install -U --user {name} failed: {e}")
            ok = False
    return ok


# --- cargo ---

CARGO_UPDATE_SCRIPT = (
    "if ! command -v cargo-install-update >/dev/null 2>&1; then "
    "cargo install cargo-update || true; "
    "fi; "
    "cargo install-update -a"
)


def update_cargo_installs(user: str, home: Path) -> bool:
    """`cargo install-update -a` as the invoking user, installing cargo-update first if needed."""
    con.print_step("Updating cargo installs...")
    try:
        system_utils.run_command(
            CARGO_UPDATE_SCRIPT, run_as_user=user, user_home=home, login_shell=True, logger=app_logger
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.error(f"cargo install-update failed: {e}")
        return False
    return True


# --- npm ---

def npm_prefix_is_system(prefix: str) -> bool:
    """True for prefixes owned by the system package manager (global updates need root)."""
    return prefix.strip() in config.NPM_SYSTEM_PREFIXES


def update_npm_globals(user: str, home: Path) -> bool:
    """`npm update -g`, with sudo for a system prefix and as the invoking user otherwise."""
    con.print_step("Updating global npm packages...")
    try:
        prefix = system_utils.run_command(
            ["npm", "config", "get", "prefix"],
            run_as_user=user, user_home=home, capture_output=True, check=False, logger=app_logger
        ).stdout or ""
    except FileNotFoundError:
        prefix = ""
    app_logger.info(f"npm global prefix for {user}: '{prefix.strip()}'")

    try:
        if npm_prefix_is_system(prefix):
            system_utils.run_command(["npm", "update", "-g"], sudo=True, logger=app_logger)
        else:
            system_utils.run_command(["npm", "update", "-g"], run_as_user=user, user_home=home, logger=app_logger)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        app_logger.error(f"npm update -g failed: {e}")
        return False
    return True
