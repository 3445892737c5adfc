from tn_tools import config
from tn_tools import rpm_fusion


def test_release_rpm_urls():
    assert rpm_fusion.release_rpm_urls("https://mirrors.rpmfusion.org", "40") == [
        "https://mirrors.rpmfusion.org/free/fedora/rpmfusion-free-release-40.noarch.rpm",
        "https://mirrors.rpmfusion.org/nonfree/fedora/rpmfusion-nonfree-release-40.noarch.rpm",
    ]


def test_is_enabled_in_repolist():
    listing = "repo id                  repo name\nfedora                   Fedora 40\nrpmfusion-free           RPM Fusion for Fedora 40 - Free\n"
    assert rpm_fusion.is_enabled_in_repolist(listing)
    assert rpm_fusion.is_enabled_in_repolist("RPMFUSION-NONFREE-updates  x\n")
    assert not rpm_fusion.is_enabled_in_repolist("fedora  Fedora 40\nupdates  Fedora 40 - Updates\n")


def test_enable_from_mirrors_installs_only_missing_release(runner):
    runner.respond(["rpm", "-E", "%fedora"], stdout="40\n")
    runner.respond(["rpm", "-q", "rpmfusion-nonfree-release"], returncode=1)
    assert rpm_fusion.enable_from_mirrors()
    assert ["dnf", "install", "-y", f"{config.RPMFUSION_MIRROR_BASE_URL}/nonfree/fedora/rpmfusion-nonfree-release-40.noarch.rpm"] in runner.commands
    assert runner.commands[-1] == ["dnf", "-y", "makecache"]


def test_enable_from_mirrors_already_installed(runner):
    runner.respond(["rpm", "-E", "%fedora"], stdout="40\n")
    assert rpm_fusion.enable_from_mirrors()
    assert not runner.ran("dnf", "install")
    assert runner.ran("dnf", "-y", "makecache")


def test_enable_from_mirrors_bad_version(runner):
    runner.respond(["rpm", "-E", "%fedora"], stdout="\n")
    assert not rpm_fusion.enable_from_mirrors()
    assert not runner.ran("dnf")


def test_enable_if_missing_skips_when_enabled(runner):
    runner.respond(["dnf", "repolist", "--enabled"], stdout="rpmfusion-free-updates  RPM Fusion\n")
    assert rpm_fusion.enable_if_missing()
    assert runner.commands == [["dnf", "repolist", "--enabled"]]


def test_enable_if_missing_installs_from_download_host(runner):
    runner.respond(["rpm", "-E", "%fedora"], stdout="41\n")
    assert rpm_fusion.enable_if_missing()
    assert ["dnf", "install", "-y", *rpm_fusion.release_rpm_urls(config.RPMFUSION_DOWNLOAD_BASE_URL, "41")] in runner.commands
    assert runner.ran("dnf", "config-manager", "--set-enabled", *config.RPMFUSION_REPOS)


def test_enable_if_missing_config_manager_failure_is_tolerated(runner):
    runner.respond(["rpm", "-E", "%fedora"], stdout="41\n")
    runner.respond(["dnf", "config-manager"], returncode=1)
    assert rpm_fusion.enable_if_missing()
