"""Tests for the image build and publish command runner."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from firebird_images.builds.runner import (
    CommandExecutionError,
    CommandResult,
    build_context_dir,
    compose_build_command,
    compose_labels,
    compose_manifest_commands,
    compose_push_commands,
    image_reference,
    run_logged,
)

IMAGE = "firebirdsql/firebird"


def option_values(cmd: list[str], option: str) -> list[str]:
    """Return every value following an option in a command."""
    return [cmd[i + 1] for i, arg in enumerate(cmd) if arg == option]


class TestImageReference:
    """Tests for image_reference function."""

    def test_plain(self):
        """Should join image and tag."""
        assert image_reference(IMAGE, "5.0.2") == "firebirdsql/firebird:5.0.2"

    def test_architecture(self):
        """Should suffix the tag with the architecture."""
        assert image_reference(IMAGE, "latest", "arm64") == (
            "firebirdsql/firebird:latest-arm64"
        )


class TestBuildContextDir:
    """Tests for build_context_dir function."""

    def test_layout(self, target):
        """Should point at generated/<version>/<variant>."""
        assert build_context_dir(Path("generated"), target) == Path(
            "generated/5.0.2/bookworm"
        )


class TestComposeBuildCommand:
    """Tests for compose_build_command function."""

    def test_amd64_command(self, target, tmp_path):
        """Should build for the platform with every tag."""
        cmd = compose_build_command(target, "amd64", IMAGE, tmp_path)

        assert cmd[:4] == ["docker", "build", "--platform", "linux/amd64"]
        assert cmd[-1] == str(tmp_path)
        assert option_values(cmd, "--tag") == [
            "firebirdsql/firebird:latest-amd64",
            "firebirdsql/firebird:5-amd64",
            "firebirdsql/firebird:5.0.2-amd64",
        ]
        assert "--build-arg" not in cmd
        assert "--progress=plain" not in cmd

    def test_arm64_build_arg(self, target, tmp_path):
        """Should select the arm64 tarball through a build argument."""
        cmd = compose_build_command(target, "arm64", IMAGE, tmp_path)

        assert option_values(cmd, "--build-arg") == ["ARCH_ARM64=1"]
        assert "linux/arm64" in cmd

    def test_verbose(self, target, tmp_path):
        """Should request plain progress output when verbose."""
        cmd = compose_build_command(target, "amd64", IMAGE, tmp_path, verbose=True)

        assert "--progress=plain" in cmd

    def test_labels(self, target, tmp_path):
        """Should apply the OCI labels."""
        cmd = compose_build_command(target, "amd64", IMAGE, tmp_path)

        labels = option_values(cmd, "--label")
        assert "org.opencontainers.image.version=5.0.2" in labels
        assert len(labels) == len(compose_labels(target))

    def test_missing_architecture(self, make_target, tmp_path):
        """Should refuse to build an architecture without a download."""
        target = make_target(architectures=("amd64",))

        with pytest.raises(ValueError, match="arm64"):
            compose_build_command(target, "arm64", IMAGE, tmp_path)


class TestComposePublishCommands:
    """Tests for push and manifest commands."""

    def test_push_every_arch_and_tag(self, target):
        """Should push each per-architecture image."""
        commands = compose_push_commands(target, IMAGE)

        assert len(commands) == 6
        assert ["docker", "push", "firebirdsql/firebird:5-arm64"] in commands

    def test_manifests(self, target):
        """Should create and push one manifest per tag."""
        commands = compose_manifest_commands(target, IMAGE)

        assert commands[0] == [
            "docker",
            "manifest",
            "create",
            "--amend",
            "firebirdsql/firebird:latest",
            "firebirdsql/firebird:latest-amd64",
            "firebirdsql/firebird:latest-arm64",
        ]
        assert commands[1] == [
            "docker",
            "manifest",
            "push",
            "firebirdsql/firebird:latest",
        ]
        assert len(commands) == 6

    def test_single_architecture(self, make_target):
        """Should only reference architectures that exist."""
        target = make_target(version="3.0.12", architectures=("amd64",))

        commands = compose_manifest_commands(target, IMAGE)

        assert commands[0][-1] == "firebirdsql/firebird:3.0.12-amd64"
        assert compose_push_commands(target, IMAGE) == [
            ["docker", "push", "firebirdsql/firebird:3.0.12-amd64"]
        ]


class TestRunLogged:
    """Tests for run_logged function."""

    def test_success(self, tmp_path):
        """Should report success and write header and footer."""
        log_path = tmp_path / "job.log"

        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)

            result = run_logged(["docker", "build", "."], log_path)

        assert isinstance(result, CommandResult)
        assert result.success is True
        assert result.command == "docker build ."
        content = log_path.read_text()
        assert "# Command: docker build ." in content
        assert "# Exit code: 0" in content

    def test_failure(self, tmp_path):
        """Should report a non-zero exit code."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=2)

            result = run_logged(["docker", "push", "x"], tmp_path / "job.log")

        assert result.success is False
        assert result.exit_code == 2

    def test_output_goes_to_log(self, tmp_path):
        """Should redirect stdout and stderr into the log file."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)

            run_logged(["docker", "build", "."], tmp_path / "job.log", timeout=60)

        kwargs = mock_run.call_args.kwargs
        assert kwargs["stderr"] == subprocess.STDOUT
        assert kwargs["timeout"] == 60
        assert kwargs["check"] is False

    def test_timeout(self, tmp_path):
        """Should raise CommandExecutionError on timeout."""
        log_path = tmp_path / "job.log"

        with patch("subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.TimeoutExpired(cmd="docker", timeout=10)

            with pytest.raises(CommandExecutionError) as exc_info:
                run_logged(["docker", "build", "."], log_path, timeout=10)

        assert exc_info.value.code == "timeout"
        assert "TIMEOUT after 10 seconds" in log_path.read_text()

    def test_missing_executable(self, tmp_path):
        """Should raise CommandExecutionError when docker is absent."""
        with patch("subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError("docker")

            with pytest.raises(CommandExecutionError) as exc_info:
                run_logged(["docker", "build", "."], tmp_path / "job.log")

        assert exc_info.value.code == "execution_error"

    def test_env_override(self, tmp_path):
        """Should merge overrides into the inherited environment."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0)

            run_logged(
                ["docker", "build", "."],
                tmp_path / "job.log",
                env_override={"DOCKER_BUILDKIT": "1"},
            )

        env = mock_run.call_args.kwargs["env"]
        assert env["DOCKER_BUILDKIT"] == "1"
        assert "PATH" in env
