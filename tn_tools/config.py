# TN-Fedora-Tools/tn_tools/config.py

from dataclasses import dataclass
from pathlib import Path

# --- Configuration file ---
CONFIG_FILE_ENV = "TN_TOOLS_CONFIG"
CONFIG_FILE_PATH = Path.home() / ".config" / "tn-fedora-tools" / "config.json"

# --- RPM Fusion ---
# install-nvidia uses the mirror redirector, update-all the primary download host.
RPMFUSION_MIRROR_BASE_URL = "https://mirrors.rpmfusion.org"
RPMFUSION_DOWNLOAD_BASE_URL = "https://download1.rpmfusion.org"
RPMFUSION_RELEASE_PACKAGES = ("rpmfusion-free-release", "rpmfusion-nonfree-release")
RPMFUSION_REPOS = (
    "rpmfusion-free",
    "rpmfusion-free-updates",
    "rpmfusion-nonfree",
    "rpmfusion-nonfree-updates",
)

# --- NVIDIA / Nouveau ---
NVIDIA_KERNEL_ARGS = (
    "rd.driver.blacklist=nouveau",
    "modprobe.blacklist=nouveau",
    "nouveau.blacklist=1",
    "nvidia_drm.modeset=1",
)

MODPROBE_DIR = Path("/etc/modprobe.d")
NOUVEAU_BLACKLIST_FILE = MODPROBE_DIR / "blacklist-nouveau.conf"
NOUVEAU_BLACKLIST_CONTENT = "blacklist nouveau\noptions nouveau modeset=0\n"

# kernel-devel-<running kernel> is prepended at run time.
NVIDIA_INSTALL_PACKAGES = [
    "kernel-headers", "gcc", "make", "dracut",
    "akmods", "openssl", "nss-tools", "mokutil",
    "xorg-x11-drv-nvidia", "xorg-x11-drv-nvidia-cuda", "xorg-x11-drv-nvidia-cuda-libs",
    "xorg-x11-drv-nvidia-power", "nvidia-settings", "nvidia-persistenced",
]

# Globs are handed to dnf unexpanded.
NVIDIA_REMOVE_PATTERNS = [
    "xorg-x11-drv-nvidia*", "nvidia-settings", "nvidia-persistenced",
    "kmod-nvidia*", "akmod-nvidia*",
]

NVIDIA_SERVICES = ("nvidia-persistenced.service", "nvidia-powerd.service")

# update-all: akmod driver plus the extras installed best effort.
NVIDIA_UPDATE_DRIVER_PACKAGE = "akmod-nvidia"
NVIDIA_UPDATE_EXTRA_PACKAGES = ["xorg-x11-drv-nvidia-cuda", "nvidia-vaapi-driver"]

# --- Boot loader ---
KERNEL_CMDLINE_FILE = Path("/etc/kernel/cmdline")
SYSTEMD_BOOT_DIR = Path("/boot/loader")
SYSTEMD_BOOT_ENTRIES_DIR = SYSTEMD_BOOT_DIR / "entries"
SYSTEMD_BOOT_LOADER_CONF = SYSTEMD_BOOT_DIR / "loader.conf"

# --- Kernel modules ---
KERNEL_SOURCE_ROOT = Path("/usr/src/kernels")
KERNEL_MODULES_ROOT = Path("/lib/modules")
NVIDIA_MODULE_GLOB = "nvidia*.ko*"
SIGN_HASH_ALGORITHM = "sha256"

# --- update-all package sets ---
BASE_TOOL_PACKAGES = [
    "ca-certificates", "curl", "coreutils", "sed", "grep", "findutils", "util-linux",
]
OPTIONAL_MANAGER_PACKAGES = ["flatpak", "python3-pip"]
SIGNING_TOOL_PACKAGES = ["mokutil", "openssl", "akmods"]

SNAP_SYMLINK = Path("/snap")
SNAP_TARGET = Path("/var/lib/snapd/snap")
SNAPD_SERVICES = ("snapd.seeded.service", "snapd.service", "snapd.socket")

# A Flatpak runtime that reached end of life; apps still on it get a warning.
FLATPAK_EOL_RUNTIME = "org.gnome.Platform"
FLATPAK_EOL_BRANCH = "46"

# npm prefixes owned by the system package manager; updates there need sudo.
NPM_SYSTEM_PREFIXES = ("/usr", "/usr/local", "/usr/lib/node_modules", "/usr/local/lib")


@dataclass(frozen=True)
class MokKeyPair:
    """Locations and identity of a Machine Owner Key used to sign modules."""
    key_dir: Path
    cert_dir: Path
    private_key: Path
    cert_pem: Path
    cert_der: Path
    subject: str
    digest: str = ""       # e.g. "-sha256"; empty leaves openssl's default
    days: int = 3650
    key_dir_mode: str = "" # chmod applied to key_dir after creation, "" to skip

    @property
    def common_name(self) -> str:
        """The CN from the subject, as mokutil --list-enrolled prints it."""
        return self.subject.strip("/").split("CN=", 1)[-1].rstrip("/")


AKMODS_PKI_DIR = Path("/etc/pki/akmods")

# Shared with akmods, so kmods it builds are signed with the enrolled key.
AKMODS_MOK = MokKeyPair(
    key_dir=AKMODS_PKI_DIR / "private",
    cert_dir=AKMODS_PKI_DIR / "certs",
    private_key=AKMODS_PKI_DIR / "private" / "mok.priv",
    cert_pem=AKMODS_PKI_DIR / "certs" / "mok.pem",
    cert_der=AKMODS_PKI_DIR / "certs" / "mok.der",
    subject="/CN=xs@fedora MOK/",
    digest="-sha256",
)

SECUREBOOT_DIR = Path("/root/secureboot")

# Used by update-all to sign NVIDIA modules directly after a kernel update.
UPDATE_MOK = MokKeyPair(
    key_dir=SECUREBOOT_DIR,
    cert_dir=SECUREBOOT_DIR,
    private_key=SECUREBOOT_DIR / "MOK.key",
    cert_pem=SECUREBOOT_DIR / "MOK.pem",
    cert_der=SECUREBOOT_DIR / "MOK.cer",
    subject="/CN=Robert Secure Boot MOK/",
    key_dir_mode="700",
)
