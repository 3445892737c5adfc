# TN-Fedora-Tools/tn_tools/system_utils.py

import logging
import os
import pwd
import re
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from tn_tools.logger_utils import app_logger as default_script_logger

PrintFn = Optional[Callable[[str], None]]


def is_root() -> bool:
    return os.geteuid() == 0


def command_exists(command_name: str) -> bool:
    """True when the executable is found on PATH (shell `command -v`)."""
    return shutil.which(command_name) is not None


def _display(command: Union[str, Sequence[str]]) -> str:
    if isinstance(command, str):
        return command
    return " ".join(shlex.quote(str(part)) for part in command)


def run_command(
    command: Union[str, List[str]],
    capture_output: bool = False,
    check: bool = True,
    shell: bool = False,
    sudo: bool = False,
    run_as_user: Optional[str] = None,
    user_home: Optional[Path] = None,
    login_shell: bool = False,
    env_vars: Optional[Dict[str, str]] = None,
    print_fn_info: PrintFn = None,
    print_fn_error: PrintFn = None,
    logger: Optional[logging.Logger] = None
) -> subprocess.CompletedProcess:
    """
    Runs a command with logging and error handling.

    Args:
        command: Argument list, or a string when shell=True or login_shell=True.
        capture_output: Capture stdout/stderr instead of streaming them to the terminal.
        check: Raise subprocess.CalledProcessError on a non-zero exit status.
        shell: Run the string through /bin/sh.
        sudo: Prefix with "sudo" unless already running as root.
        run_as_user: Run as this user through sudo, with HOME set to user_home.
        user_home: HOME for run_as_user (looked up in the passwd database if omitted).
        login_shell: With run_as_user, run the command through `bash -lc` so the
                     user's profile (and e.g. ~/.cargo/bin) is loaded.
        env_vars: Extra environment variables.
        print_fn_info: Called with "Executing: ..." when given.
        print_fn_error: Called with a short failure message when given.
        logger: Logger to use instead of the package logger.

    Raises:
        subprocess.CalledProcessError: When check=True and the command fails.
        FileNotFoundError: When the executable does not exist.
    """
    log = logger or default_script_logger

    command_to_execute: Union[str, List[str]]
    if run_as_user:
        home = user_home or get_user_home_dir(run_as_user, logger=log)
        prefix = ["sudo", "-u", run_as_user, "env", f"HOME={home}"]
        if login_shell:
            inner = command if isinstance(command, str) else _display(command)
            command_to_execute = prefix + ["bash", "-lc", inner]
        else:
            command_to_execute = prefix + (shlex.split(command) if isinstance(command, str) else [str(c) for c in command])
        shell = False # bash -lc (or the argv itself) is the shell now
        display_command_str = f"(as {run_as_user}) {_display(command)}"
    elif sudo and not is_root():
        if isinstance(command, str):
            command_to_execute = f"sudo {command}"
        else:
            command_to_execute = ["sudo"] + [str(c) for c in command]
        display_command_str = _display(command_to_execute)
    else:
        command_to_execute = command if isinstance(command, str) else [str(c) for c in command]
        display_command_str = _display(command_to_execute)

    current_env = os.environ.copy()
    if env_vars:
        current_env.update(env_vars)

    log.info(f"Executing: {display_command_str}")
    if print_fn_info:
        print_fn_info(f"Executing: {display_command_str}")

    try:
        process = subprocess.run(
            command_to_execute,
            check=False, # checked below so the failure is logged with its output
            capture_output=capture_output,
            text=True,
            shell=shell,
            env=current_env
        )
    except FileNotFoundError:
        missing = command_to_execute[0] if isinstance(command_to_execute, list) else display_command_str.split()[0]
        log.error(f"Command executable not found: '{missing}' (Full command attempted: '{display_command_str}')")
        if print_fn_error:
            print_fn_error(f"Command executable not found: '{missing}'. Ensure it's installed and in PATH.")
        raise

    if process.stdout and process.stdout.strip():
        log.debug(f"CMD STDOUT for '{display_command_str}':\n{process.stdout.strip()}")
    if process.stderr and process.stderr.strip():
        # Some tools report progress on stderr; not necessarily an error.
        log.warning(f"CMD STDERR for '{display_command_str}':\n{process.stderr.strip()}")

    if check and process.returncode != 0:
        log.error(f"Command '{display_command_str}' returned non-zero exit status {process.returncode}.")
        if print_fn_error:
            print_fn_error(f"Command failed: '{display_command_str}' (Exit code: {process.returncode}). Check logs.")
        raise subprocess.CalledProcessError(
            returncode=process.returncode,
            cmd=command_to_execute,
            output=process.stdout,
            stderr=process.stderr
        )

    return process


def command_succeeds(command: Union[str, List[str]], sudo: bool = False, logger: Optional[logging.Logger] = None) -> bool:
    """Quiet check: True when the command exists and exits 0."""
    try:
        proc = run_command(command, capture_output=True, check=False, sudo=sudo, logger=logger)
    except FileNotFoundError:
        return False
    return proc.returncode == 0


# --- Users ---

def get_user_home_dir(username: str, logger: Optional[logging.Logger] = None) -> Path:
    """Home directory of username from the passwd database (getent passwd)."""
    log = logger or default_script_logger
    home = Path(pwd.getpwnam(username).pw_dir)
    log.debug(f"Home directory for '{username}' is '{home}'.")
    return home


def get_invoking_user(logger: Optional[logging.Logger] = None) -> Tuple[str, Path]:
    """
    The real user behind the run: SUDO_USER when started via sudo, else USER,
    else the effective uid's name. Returns (username, home).
    """
    log = logger or default_script_logger
    username = os.environ.get("SUDO_USER") or os.environ.get("USER")
    if not username:
        username = pwd.getpwuid(os.geteuid()).pw_name
        log.info(f"SUDO_USER and USER unset, using uid's username: {username}")
    try:
        home = get_user_home_dir(username, logger=log)
    except KeyError:
        log.warning(f"User '{username}' not found in the passwd database; falling back to $HOME.")
        home = Path.home()
    log.info(f"Invoking user: {username} (home: {home})")
    return username, home


# --- RPM / DNF ---

def is_package_installed_rpm(package_name: str, logger: Optional[logging.Logger] = None) -> bool:
    """
    Checks if a package is installed using 'rpm -q'.
    Raises FileNotFoundError when rpm itself is missing.
    """
    log = logger or default_script_logger
    if not package_name:
        log.debug("Empty package name passed to is_package_installed_rpm.")
        return False
    proc = run_command(["rpm", "-q", package_name], capture_output=True, check=False, logger=log)
    installed = proc.returncode == 0
    log.info(f"RPM package '{package_name}' is {'installed' if installed else 'not installed'}.")
    return installed


def missing_packages(packages: Sequence[str], logger: Optional[logging.Logger] = None) -> List[str]:
    """The subset of packages that rpm does not report as installed, in order."""
    return [p for p in packages if not is_package_installed_rpm(p, logger=logger)]


def install_dnf_packages(
    packages: Sequence[str],
    allow_erasing: bool = False,
    extra_args: Optional[List[str]] = None,
    sudo: bool = True,
    print_fn_info: PrintFn = None,
    print_fn_error: PrintFn = None,
    logger: Optional[logging.Logger] = None
) -> bool:
    """`dnf install -y` the given packages (names, globs or RPM URLs). True on success."""
    log = logger or default_script_logger
    if not packages:
        log.info("No DNF packages specified for installation.")
        return True

    cmd = ["dnf", "install", "-y"]
    if allow_erasing:
        cmd.append("--allowerasing")
    if extra_args:
        cmd.extend(extra_args)
    cmd.extend(packages)

    packages_str = ", ".join(packages)
    try:
        run_command(cmd, sudo=sudo, print_fn_info=print_fn_info, print_fn_error=print_fn_error, logger=log)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        log.error(f"Failed to install DNF packages: {packages_str}. Error: {e}")
        return False
    log.info(f"DNF packages processed successfully: {packages_str}")
    return True


def ensure_packages(
    packages: Sequence[str],
    print_fn_info: PrintFn = None,
    print_fn_error: PrintFn = None,
    logger: Optional[logging.Logger] = None
) -> bool:
    """Installs only the packages that are not installed yet. True when nothing is left missing."""
    log = logger or default_script_logger
    try:
        to_install = missing_packages(packages, logger=log)
    except FileNotFoundError:
        log.error("'rpm' command not found. Cannot check which packages are installed.")
        if print_fn_error:
            print_fn_error("'rpm' command not found. Cannot check which packages are installed.")
        return False
    if not to_install:
        log.info(f"All packages already installed: {', '.join(packages)}")
        return True
    if print_fn_info:
        print_fn_info(f"Installing missing packages: {' '.join(to_install)}")
    return install_dnf_packages(to_install, print_fn_error=print_fn_error, logger=log)


def swap_dnf_packages(
    from_pkg: str,
    to_pkg: str,
    allow_erasing: bool = True,
    sudo: bool = True,
    print_fn_error: PrintFn = None,
    logger: Optional[logging.Logger] = None
) -> bool:
    """`dnf swap -y from to`. True on success."""
    log = logger or default_script_logger
    cmd = ["dnf", "swap", "-y", from_pkg, to_pkg]
    if allow_erasing:
        cmd.append("--allowerasing")
    try:
        run_command(cmd, sudo=sudo, print_fn_error=print_fn_error, logger=log)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        log.error(f"Failed DNF swap from '{from_pkg}' to '{to_pkg}'. Error: {e}")
        return False
    log.info(f"Successfully swapped '{from_pkg}' with '{to_pkg}'.")
    return True


def upgrade_system_dnf(
    refresh: bool = True,
    print_fn_error: PrintFn = None,
    logger: Optional[logging.Logger] = None
) -> bool:
    """`sudo dnf upgrade [--refresh] -y`, output streamed to the terminal."""
    log = logger or default_script_logger
    cmd = ["dnf", "upgrade"]
    if refresh:
        cmd.append("--refresh")
    cmd.append("-y")
    try:
        run_command(cmd, sudo=True, print_fn_error=print_fn_error, logger=log)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        log.error(f"System DNF upgrade failed. Error: {e}")
        return False
    log.info("System DNF upgrade completed successfully.")
    return True


def get_fedora_version(logger: Optional[logging.Logger] = None) -> str:
    """
    Fedora release number from `rpm -E %fedora`.
    Raises ValueError when the macro does not expand to a number.
    """
    log = logger or default_script_logger
    proc = run_command(["rpm", "-E", "%fedora"], capture_output=True, check=True, logger=log)
    version = proc.stdout.strip()
    if not version.isdigit():
        raise ValueError(f"Could not determine a valid Fedora version (got: '{version}')")
    return version


def is_atomic_system(logger: Optional[logging.Logger] = None) -> bool:
    """rpm-ostree based (Silverblue/Kinoite/...) systems answer `rpm-ostree status`."""
    return command_exists("rpm-ostree") and command_succeeds(["rpm-ostree", "status"], logger=logger)


# --- Kernels ---

def get_running_kernel() -> str:
    """Equivalent of `uname -r`."""
    return os.uname().release


def version_sort_key(version: str) -> List[Tuple[int, int, str]]:
    """
    Sort key comparing digit runs numerically and everything else as text,
    so 6.10.1 sorts after 6.9.12 (like `sort -V`).
    """
    key = []
    for chunk in re.findall(r"\d+|\D+", version):
        if chunk.isdigit():
            key.append((1, int(chunk), ""))
        else:
            key.append((0, 0, chunk))
    return key


def newest_installed_kernel(logger: Optional[logging.Logger] = None) -> Optional[str]:
    """
    Highest installed kernel-core as VERSION-RELEASE.ARCH (the /lib/modules
    directory name), or None when none is installed or rpm is missing.
    """
    log = logger or default_script_logger
    try:
        proc = run_command(
            ["rpm", "-q", "--qf", "%{VERSION}-%{RELEASE}.%{ARCH}\\n", "kernel-core"],
            capture_output=True, check=False, logger=log
        )
    except FileNotFoundError:
        log.warning("'rpm' not found, cannot list installed kernels.")
        return None
    if proc.returncode != 0:
        return None
    versions = [line.strip() for line in proc.stdout.splitlines() if re.match(r"^\d", line.strip())]
    if not versions:
        return None
    return max(versions, key=version_sort_key)
