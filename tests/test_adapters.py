"""
Tests for capability ports — local filesystem, subprocess runner,
apt/systemd over a mock runner, and the mock adapters themselves.
"""

import json
from pathlib import Path

from autorpi.adapters.mock import (
    MockDownloader,
    MockFileWriter,
    MockPackageInstaller,
    MockProcessRunner,
    MockServiceManager,
)
from autorpi.adapters.net.download import latest_release_asset
from autorpi.adapters.registry import Capabilities, mock_capabilities
from autorpi.adapters.shell.command import SubprocessRunner
from autorpi.adapters.shell.filesystem import LocalFileWriter
from autorpi.adapters.system.apt import AptPackageInstaller
from autorpi.adapters.system.reboot import SystemRebooter
from autorpi.adapters.system.systemd import SystemdServiceManager

# ── Local filesystem ─────────────────────────────────────────────────


class TestLocalFileWriter:
    def test_write_under_root(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        receipt = fs.write("/etc/hostname", "pi\n")
        assert receipt.ok
        assert receipt.metadata["changed"] is True
        assert (tmp_path / "etc" / "hostname").read_text() == "pi\n"

    def test_identical_write_is_unchanged(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        fs.write("/etc/hostname", "pi\n")
        receipt = fs.write("/etc/hostname", "pi\n")
        assert receipt.ok
        assert receipt.metadata["changed"] is False

    def test_mode(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        fs.write("/etc/sudoers.d/010_pi", "pi ALL\n", mode=0o440)
        assert (tmp_path / "etc/sudoers.d/010_pi").stat().st_mode & 0o777 == 0o440

    def test_append_line_once(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        fs.write("/home/pi/.bashrc", "export A=1")
        fs.append_line("/home/pi/.bashrc", 'eval "$(starship init bash)"')
        receipt = fs.append_line("/home/pi/.bashrc", 'eval "$(starship init bash)"')
        assert receipt.metadata["changed"] is False
        assert fs.read("/home/pi/.bashrc") == 'export A=1\neval "$(starship init bash)"\n'

    def test_read_missing(self, tmp_path: Path):
        assert LocalFileWriter(tmp_path).read("/etc/nothing") is None

    def test_exists_and_is_dir(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        fs.mkdir("/opt/kiauh/.git")
        assert fs.exists("/opt/kiauh")
        assert fs.is_dir("/opt/kiauh/.git")
        assert not fs.exists("/opt/other")

    def test_write_failure_is_receipt(self, tmp_path: Path):
        blocker = tmp_path / "etc"
        blocker.write_text("not a dir")
        receipt = LocalFileWriter(tmp_path).write("/etc/hostname", "pi")
        assert receipt.failed
        assert "Filesystem error" in receipt.error

    def test_write_leaves_no_temporary_files(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        fs.write("/etc/fstab", "old\n")
        fs.write("/etc/fstab", "new\n")
        assert [p.name for p in (tmp_path / "etc").iterdir()] == ["fstab"]
        assert fs.read("/etc/fstab") == "new\n"

    def test_new_file_is_world_readable(self, tmp_path: Path):
        LocalFileWriter(tmp_path).write("/etc/hostname", "pi\n")
        assert (tmp_path / "etc/hostname").stat().st_mode & 0o777 == 0o644

    def test_rewrite_keeps_existing_mode(self, tmp_path: Path):
        fs = LocalFileWriter(tmp_path)
        fs.write("/etc/sudoers.d/010_pi", "pi ALL\n", mode=0o440)
        fs.write("/etc/sudoers.d/010_pi", "pi ALL=(ALL) NOPASSWD: ALL\n")
        assert (tmp_path / "etc/sudoers.d/010_pi").stat().st_mode & 0o777 == 0o440

    def test_failed_rename_keeps_original(self, tmp_path: Path, monkeypatch):
        fs = LocalFileWriter(tmp_path)
        fs.write("/boot/firmware/cmdline.txt", "console=tty1\n")

        def refuse(self, target):
            raise OSError("disk full")

        monkeypatch.setattr(Path, "replace", refuse)
        receipt = fs.write("/boot/firmware/cmdline.txt", "console=tty1 cgroup_memory=1\n")

        assert receipt.failed
        assert "disk full" in receipt.error
        assert (tmp_path / "boot/firmware/cmdline.txt").read_text() == "console=tty1\n"
        assert [p.name for p in (tmp_path / "boot/firmware").iterdir()] == ["cmdline.txt"]


# ── Subprocess runner ────────────────────────────────────────────────


class TestSubprocessRunner:
    def test_success(self):
        receipt = SubprocessRunner().run(["echo", "hello"])
        assert receipt.ok
        assert receipt.output == "hello"
        assert receipt.return_code == 0

    def test_failure_keeps_return_code(self):
        receipt = SubprocessRunner().shell("exit 3")
        assert receipt.failed
        assert receipt.return_code == 3

    def test_missing_binary(self):
        receipt = SubprocessRunner().run(["definitely-not-a-real-binary-xyz"])
        assert receipt.failed
        assert "execution error" in receipt.error

    def test_input_and_env(self):
        receipt = SubprocessRunner().shell('echo "$SUFFIX"', env={"SUFFIX": "ok"})
        assert receipt.output == "ok"
        receipt = SubprocessRunner().run(["cat"], input="piped")
        assert receipt.output == "piped"

    def test_timeout(self):
        receipt = SubprocessRunner().run(["sleep", "5"], timeout=1)
        assert receipt.failed
        assert "timed out" in receipt.error

    def test_which(self):
        runner = SubprocessRunner()
        assert runner.which("sh")
        assert not runner.which("definitely-not-a-real-binary-xyz")


# ── apt / systemd / reboot over a mock runner ────────────────────────


class TestAptPackageInstaller:
    def test_installs_missing_only(self):
        runner = MockProcessRunner()
        runner.set_output("dpkg-query -W '-f=${Status}' git", "install ok installed")
        apt = AptPackageInstaller(runner)
        receipt = apt.install(["git", "vim"])
        assert receipt.ok
        assert runner.calls_matching("apt-get install") == [
            "apt-get install -y --no-install-recommends vim"
        ]

    def test_all_installed_is_noop(self):
        runner = MockProcessRunner()
        runner.set_output("dpkg-query", "install ok installed")
        receipt = AptPackageInstaller(runner).install(["git"])
        assert receipt.ok
        assert runner.calls_matching("apt-get") == []

    def test_retries_after_update(self):
        runner = MockProcessRunner()
        runner.set_failure("apt-get install", error="Unable to locate package")
        receipt = AptPackageInstaller(runner).install(["podman"])
        assert receipt.failed
        assert len(runner.calls_matching("apt-get install")) == 2
        assert runner.calls_matching("apt-get update")

    def test_noninteractive_env(self):
        runner = MockProcessRunner()
        AptPackageInstaller(runner).update()
        assert runner._envs[-1] == {"DEBIAN_FRONTEND": "noninteractive"}


class TestSystemdServiceManager:
    def test_enable_now(self):
        runner = MockProcessRunner()
        SystemdServiceManager(runner).enable("fstrim.timer", now=True)
        assert runner.call_log == ["systemctl enable --now fstrim.timer"]

    def test_disable(self):
        runner = MockProcessRunner()
        SystemdServiceManager(runner).disable("bluetooth.service")
        assert runner.call_log == ["systemctl disable bluetooth.service"]

    def test_is_active(self):
        runner = MockProcessRunner()
        runner.set_failure("systemctl is-active --quiet docker", return_code=3)
        services = SystemdServiceManager(runner)
        assert not services.is_active("docker")
        assert services.is_active("node_exporter")


class TestSystemRebooter:
    def test_syncs_first(self):
        runner = MockProcessRunner()
        SystemRebooter(runner).reboot()
        assert runner.call_log == ["sync", "reboot"]


# ── Downloader helpers ───────────────────────────────────────────────


class TestLatestReleaseAsset:
    API = "https://api.github.com/repos/prometheus/node_exporter/releases/latest"

    def test_match(self):
        release = {
            "assets": [
                {"browser_download_url": "https://x/node_exporter-1.8.linux-amd64.tar.gz"},
                {"browser_download_url": "https://x/node_exporter-1.8.linux-arm64.tar.gz"},
            ]
        }
        downloader = MockDownloader({self.API: json.dumps(release)})
        url = latest_release_asset(downloader, "prometheus/node_exporter", r"linux-arm64\.tar\.gz$")
        assert url == "https://x/node_exporter-1.8.linux-arm64.tar.gz"

    def test_lookup_failure(self):
        assert latest_release_asset(MockDownloader(), "prometheus/node_exporter", "arm64") is None

    def test_not_json(self):
        downloader = MockDownloader({self.API: "<html>rate limited</html>"})
        assert latest_release_asset(downloader, "prometheus/node_exporter", "arm64") is None


# ── Mocks and registry ───────────────────────────────────────────────


class TestMocks:
    def test_runner_longest_prefix_wins(self):
        runner = MockProcessRunner()
        runner.set_failure("id")
        runner.set_output("id -u pi", "1000")
        assert runner.run(["id", "-u", "pi"]).output == "1000"
        assert runner.run(["id", "-u", "bob"]).failed

    def test_runner_programs(self):
        runner = MockProcessRunner(programs=("podman",))
        assert runner.which("podman")
        runner.remove_program("podman")
        assert not runner.which("podman")

    def test_package_failure(self):
        packages = MockPackageInstaller()
        packages.set_failure("alacritty")
        assert packages.install(["fish", "alacritty"]).failed
        assert packages.install(["fish"]).ok
        assert packages.is_installed("fish")

    def test_services(self):
        services = MockServiceManager()
        services.enable("docker", now=True)
        assert services.is_active("docker")
        services.set_failure("bluetooth.service")
        assert services.disable("bluetooth.service").failed

    def test_file_writer_dirs(self):
        files = MockFileWriter({"/opt/kiauh/README.md": "x"})
        assert files.is_dir("/opt/kiauh")
        assert files.exists("/opt/kiauh")
        assert not files.is_dir("/opt/kiauh/.git")

    def test_capabilities_status(self):
        caps = mock_capabilities()
        assert isinstance(caps, Capabilities)
        status = caps.status()
        assert set(status) == {"runner", "packages", "services", "files", "downloader", "rebooter"}
        assert all(info["available"] for info in status.values())
