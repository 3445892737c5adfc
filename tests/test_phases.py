import pytest

from tn_tools import config
from tn_tools import phase_manager
from tn_tools import system_utils
from tn_tools.config_loader import Settings
from tn_tools.phases import install_nvidia, uninstall_nvidia, update_all


# --- Step runner ---

def test_run_steps_continues_after_failures():
    order = []

    def record(name, result):
        def step():
            order.append(name)
            return result
        return step

    def boom():
        order.append("boom")
        raise RuntimeError("unexpected")

    failed = phase_manager.run_steps([
        ("first", record("first", True)),
        ("second", record("second", False)),
        ("third", boom),
        ("fourth", record("fourth", None)),
    ])
    assert order == ["first", "second", "boom", "fourth"]
    assert failed == ["second", "third"]


def test_run_task_exits_130_on_ctrl_c(monkeypatch, tmp_path):
    monkeypatch.setenv("TN_TOOLS_LOG_FILE", str(tmp_path / "tn.log"))
    monkeypatch.setenv(config.CONFIG_FILE_ENV, str(tmp_path / "missing.json"))

    def interrupted(settings):
        raise KeyboardInterrupt

    with pytest.raises(SystemExit) as excinfo:
        phase_manager.run_task("test-task", interrupted)
    assert excinfo.value.code == 130


def test_run_task_soft_failure_does_not_exit(monkeypatch, tmp_path):
    monkeypatch.setenv("TN_TOOLS_LOG_FILE", str(tmp_path / "tn.log"))
    monkeypatch.setenv(config.CONFIG_FILE_ENV, str(tmp_path / "missing.json"))
    seen = []
    phase_manager.run_task("test-task", lambda settings: seen.append(settings) or False)
    assert isinstance(seen[0], Settings)


# --- install-nvidia ---

def test_install_requires_root(runner, as_user):
    with pytest.raises(SystemExit) as excinfo:
        install_nvidia.run(Settings())
    assert excinfo.value.code == 1
    assert runner.commands == []


def test_install_bits_adds_running_kernel_headers(runner, monkeypatch):
    monkeypatch.setattr(system_utils, "get_running_kernel", lambda: "6.10.3-200.fc40.x86_64")
    settings = Settings(nvidia_packages=["akmod-nvidia", "nvidia-settings"])
    assert install_nvidia.install_bits(settings)
    assert runner.commands == [
        ["dnf", "install", "-y", "kernel-devel-6.10.3-200.fc40.x86_64", "akmod-nvidia", "nvidia-settings"],
    ]


def test_swap_ffmpeg_only_when_free_variant_installed(runner):
    runner.respond(["rpm", "-q", "ffmpeg-free"], returncode=1)
    assert install_nvidia.swap_ffmpeg_if_needed()
    assert not runner.ran("dnf", "swap")

    runner.respond(["rpm", "-q", "ffmpeg-free"], returncode=0)
    runner.respond(["dnf", "swap"], returncode=1)
    assert install_nvidia.swap_ffmpeg_if_needed()
    assert runner.ran("dnf", "swap", "-y", "ffmpeg-free", "ffmpeg")


def test_blacklist_nouveau_writes_modprobe_file(tmp_path):
    target = tmp_path / "modprobe.d" / "blacklist-nouveau.conf"
    assert install_nvidia.blacklist_nouveau(target)
    assert target.read_text() == "blacklist nouveau\noptions nouveau modeset=0\n"


def test_blacklist_nouveau_write_failure(tmp_path):
    blocker = tmp_path / "modprobe.d"
    blocker.write_text("not a directory")
    assert not install_nvidia.blacklist_nouveau(blocker / "blacklist-nouveau.conf")


def test_mok_skipped_without_secure_boot(runner):
    assert install_nvidia.ensure_mok_key_if_needed(False)
    assert runner.commands == []


def test_enable_services_tolerates_missing_units(runner):
    runner.respond(["systemctl", "enable", "--now", "nvidia-powerd.service"], returncode=1)
    assert install_nvidia.enable_services()
    assert runner.ran("systemctl", "enable", "--now", "nvidia-persistenced.service")


def test_install_runs_every_step_and_reports(runner, as_root, monkeypatch):
    calls = []
    monkeypatch.setattr(install_nvidia.secure_boot, "is_secure_boot_enabled", lambda: False)
    monkeypatch.setattr(install_nvidia.rpm_fusion, "enable_from_mirrors", lambda: calls.append("rpmfusion") or False)
    monkeypatch.setattr(install_nvidia, "swap_ffmpeg_if_needed", lambda: calls.append("ffmpeg") or True)
    monkeypatch.setattr(install_nvidia, "install_bits", lambda settings: calls.append("bits") or True)
    monkeypatch.setattr(install_nvidia, "blacklist_nouveau", lambda: calls.append("blacklist") or True)
    monkeypatch.setattr(install_nvidia.kernel_cmdline, "add_kernel_args", lambda: calls.append("cmdline") or True)
    monkeypatch.setattr(install_nvidia, "build_modules", lambda: calls.append("build") or True)
    monkeypatch.setattr(install_nvidia, "enable_services", lambda: calls.append("services") or True)

    assert install_nvidia.run(Settings()) is False
    assert calls == ["rpmfusion", "ffmpeg", "bits", "blacklist", "cmdline", "build", "services"]


# --- uninstall-nvidia ---

def test_uninstall_requires_root(runner, as_user):
    with pytest.raises(SystemExit) as excinfo:
        uninstall_nvidia.run(Settings())
    assert excinfo.value.code == 1


def test_remove_packages_passes_globs_to_dnf(runner):
    assert uninstall_nvidia.remove_packages()
    assert runner.commands == [["dnf", "-y", "remove", *config.NVIDIA_REMOVE_PATTERNS]]


def test_remove_nouveau_blacklist(tmp_path):
    target = tmp_path / "blacklist-nouveau.conf"
    target.write_text("blacklist nouveau\n")
    assert uninstall_nvidia.remove_nouveau_blacklist(target)
    assert not target.exists()
    assert uninstall_nvidia.remove_nouveau_blacklist(target)


def test_stop_services_ignores_failures(runner):
    runner.respond(["systemctl"], returncode=5)
    assert uninstall_nvidia.stop_services()
    assert len(runner.commands) == len(config.NVIDIA_SERVICES)


def test_regenerate_boot_files(runner):
    assert uninstall_nvidia.regenerate_boot_files()
    assert runner.commands == [["dracut", "--regenerate-all", "--force"], ["depmod", "-a"]]


# --- update-all ---

def test_update_without_sudo_exits_1(runner, available_tools):
    with pytest.raises(SystemExit) as excinfo:
        update_all.run(Settings())
    assert excinfo.value.code == 1


def test_update_sudo_auth_failure_exits_1(runner, available_tools):
    available_tools.add("sudo")
    runner.respond(["sudo", "-v"], returncode=1)
    with pytest.raises(SystemExit) as excinfo:
        update_all.require_sudo()
    assert excinfo.value.code == 1


def test_update_stops_on_atomic_fedora(runner, available_tools, monkeypatch):
    available_tools.update({"sudo", "rpm-ostree"})
    monkeypatch.setattr(system_utils, "get_invoking_user", lambda logger=None: ("alice", "/home/alice"))
    with pytest.raises(SystemExit) as excinfo:
        update_all.run(Settings())
    assert excinfo.value.code == 0
    assert not runner.ran("dnf")


def test_akmod_nvidia_installed(runner):
    runner.respond(["rpm", "-qa"], stdout="bash-5.2\nakmod-nvidia-open-560.35-1.fc40.x86_64\n")
    assert update_all.akmod_nvidia_installed()
    runner.respond(["rpm", "-qa"], stdout="bash-5.2\nkmod-nvidia-560\n")
    assert not update_all.akmod_nvidia_installed()


def test_ensure_nvidia_stack_skips_without_gpu(runner):
    runner.respond(["lspci", "-nnk"], stdout="00:02.0 VGA compatible controller: Intel Corporation\n")
    assert update_all.ensure_nvidia_stack()
    assert not runner.ran("dnf")


def test_ensure_nvidia_stack_installs_driver_and_extras(runner):
    runner.respond(["lspci", "-nnk"], stdout="01:00.0 VGA compatible controller: NVIDIA Corporation AD104\n")
    runner.respond(["rpm", "-q", "akmod-nvidia"], returncode=1)
    runner.respond(["dnf", "install", "-y", *config.NVIDIA_UPDATE_EXTRA_PACKAGES], returncode=1)
    assert update_all.ensure_nvidia_stack()
    assert ["dnf", "install", "-y", "akmod-nvidia"] in runner.commands


NEWEST_KERNEL = "6.10.11-200.fc40.x86_64"


def test_ensure_managers_respects_disabled_toggles(runner, available_tools):
    settings = Settings(enable_rpmfusion=False, install_optional_managers=False, install_nvidia_stack=False)
    assert update_all.ensure_managers(settings)
    assert not runner.ran("dnf", "repolist")
    assert not runner.ran("rpm", "-q", "flatpak")
    assert not runner.ran("rpm", "-q", "python3-pip")
    assert not runner.ran("lspci")
    for package in config.BASE_TOOL_PACKAGES + config.SIGNING_TOOL_PACKAGES:
        assert runner.ran("rpm", "-q", package)


def test_ensure_managers_with_every_toggle_on(runner, available_tools):
    runner.respond(["dnf", "repolist", "--enabled"], stdout="rpmfusion-free  RPM Fusion\n")
    runner.respond(["lspci", "-nnk"], stdout="00:02.0 VGA compatible controller: Intel Corporation\n")
    assert update_all.ensure_managers(Settings())
    assert runner.ran("dnf", "repolist", "--enabled")
    assert runner.ran("rpm", "-q", "flatpak")
    assert runner.ran("rpm", "-q", "python3-pip")
    assert runner.ran("lspci", "-nnk")


def test_kernel_devel_requested_when_no_sign_tool(runner, available_tools, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "KERNEL_SOURCE_ROOT", tmp_path)
    runner.respond(["rpm", "-q", "--qf"], stdout=f"{NEWEST_KERNEL}\n")
    runner.respond(["rpm", "-q", f"kernel-devel-{NEWEST_KERNEL}"], returncode=1)
    assert update_all.ensure_kernel_devel_for_signing()
    assert ["dnf", "install", "-y", f"kernel-devel-{NEWEST_KERNEL}"] in runner.commands


def test_kernel_devel_not_requested_with_sign_file(runner, available_tools, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "KERNEL_SOURCE_ROOT", tmp_path)
    sign_file = tmp_path / NEWEST_KERNEL / "scripts" / "sign-file"
    sign_file.parent.mkdir(parents=True)
    sign_file.write_text("#!/bin/sh\n")
    sign_file.chmod(0o755)
    runner.respond(["rpm", "-q", "--qf"], stdout=f"{NEWEST_KERNEL}\n")
    assert update_all.ensure_kernel_devel_for_signing()
    assert not runner.ran("rpm", "-q", f"kernel-devel-{NEWEST_KERNEL}")
    assert not runner.ran("dnf")


def test_kernel_devel_not_requested_with_kmodsign(runner, available_tools, monkeypatch, tmp_path):
    monkeypatch.setattr(config, "KERNEL_SOURCE_ROOT", tmp_path)
    available_tools.add("kmodsign")
    runner.respond(["rpm", "-q", "--qf"], stdout=f"{NEWEST_KERNEL}\n")
    assert update_all.ensure_kernel_devel_for_signing()
    assert not runner.ran("dnf")


def test_resign_skipped_without_secure_boot(runner, available_tools):
    available_tools.add("mokutil")
    runner.respond(["mokutil", "--sb-state"], stdout="SecureBoot disabled\n")
    assert update_all.resign_nvidia_modules()
    assert runner.commands == [["mokutil", "--sb-state"]]


def test_resign_signs_newest_kernel(runner, monkeypatch):
    signed = []
    monkeypatch.setattr(update_all.secure_boot, "secure_boot_state", lambda: "secureboot enabled")
    monkeypatch.setattr(update_all.secure_boot, "ensure_mok_key", lambda mok, verify_enrollment: not verify_enrollment)
    monkeypatch.setattr(system_utils, "newest_installed_kernel", lambda logger=None: "6.10.11-200.fc40.x86_64")
    monkeypatch.setattr(
        update_all.secure_boot, "sign_modules_for_kernel",
        lambda kver, mok: signed.append((kver, mok)) or True
    )
    assert update_all.resign_nvidia_modules()
    assert signed == [("6.10.11-200.fc40.x86_64", config.UPDATE_MOK)]


def test_update_runs_managers_only_when_present(runner, available_tools, monkeypatch):
    available_tools.update({"sudo", "flatpak", "npm"})
    calls = []
    monkeypatch.setattr(system_utils, "get_invoking_user", lambda logger=None: ("alice", "/home/alice"))
    monkeypatch.setattr(update_all, "ensure_managers", lambda settings: calls.append("managers") or True)
    monkeypatch.setattr(update_all, "update_dnf", lambda: calls.append("dnf") or True)
    monkeypatch.setattr(update_all.package_managers, "update_flatpak", lambda: calls.append("flatpak") or True)
    monkeypatch.setattr(update_all.package_managers, "refresh_snaps", lambda: calls.append("snap") or True)
    monkeypatch.setattr(
        update_all.package_managers, "update_npm_globals",
        lambda user, home: calls.append(f"npm:{user}") or False
    )
    monkeypatch.setattr(update_all, "resign_nvidia_modules", lambda: calls.append("sign") or True)

    assert update_all.run(Settings(install_optional_managers=False)) is False
    assert calls == ["managers", "dnf", "flatpak", "npm:alice", "sign"]
