"""Tests for transfer, container deployment and the lock."""

import shutil
import subprocess
from unittest.mock import patch

import pytest

from hostdeploy import deployer, docker, transfer
from hostdeploy.backends import dockerfile
from hostdeploy.errors import DeploymentError, LockError, TransferError
from hostdeploy.lock import RemoteLock
from hostdeploy.pipeline import Pipeline
from hostdeploy.source import Checkout


@pytest.fixture
def dockerfile_checkout(checkout_dir):
    return Checkout(checkout_dir, "sample", "Dockerfile", "dockerfile")


@pytest.fixture
def compose_checkout(checkout_dir):
    return Checkout(checkout_dir, "sample", "docker-compose.yml", "compose")


class TestTransfer:
    """Tests for mirrored sync."""

    def test_rsync_mirrors_with_delete(self, spec, checkout_dir):
        """Should mirror the tree contents into the remote dir over SSH."""
        cmd = transfer.build_rsync_cmd(checkout_dir, spec)

        assert cmd.argv[:3] == ("rsync", "-az", "--delete")
        assert cmd.argv[-2] == f"{checkout_dir}/"
        assert cmd.argv[-1] == "deploy@203.0.113.10:/home/deploy/sample/"
        assert "--exclude" in cmd.argv
        remote_shell = cmd.argv[cmd.argv.index("-e") + 1]
        assert remote_shell.startswith("ssh -i ")

    @pytest.mark.skipif(shutil.which("rsync") is None, reason="rsync not installed")
    def test_mirror_removes_deleted_files(self, spec, tmp_path):
        """Files gone from the local tree should disappear from the target."""
        src = tmp_path / "src"
        dst = tmp_path / "dst"
        (src / ".git").mkdir(parents=True)
        (src / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
        (src / "app.js").write_text("v2")
        dst.mkdir()
        (dst / "app.js").write_text("v1")
        (dst / "stale.js").write_text("old")

        cmd = transfer.build_rsync_cmd(src, spec)
        subprocess.run([*cmd.argv[:-1], f"{dst}/"], check=True, capture_output=True)

        assert sorted(p.name for p in dst.iterdir()) == ["app.js"]
        assert (dst / "app.js").read_text() == "v2"

    def test_sync_prepares_directory(self, host, spec, checkout_dir):
        """Should create and chown the remote dir before running rsync."""
        transfer.sync(checkout_dir, spec)

        assert ("sudo", "mkdir", "-p", "/home/deploy/sample") in host.remote_log
        assert ("sudo", "chown", "deploy:deploy", "/home/deploy/sample") in host.remote_log
        assert host.local_log[-1][0] == "rsync"

    def test_rsync_failure(self, host, spec, checkout_dir):
        """A failed rsync should raise TransferError."""
        host.fail_local.add("rsync")
        with pytest.raises(TransferError, match="rsync"):
            transfer.sync(checkout_dir, spec)


class TestProjectMatching:
    """Tests for docker.belongs_to_project."""

    @pytest.mark.parametrize("name", ["sample", "sample_1700000000", "sample-web-1", "/sample_1"])
    def test_matches(self, name):
        """Exact, timestamped and compose names belong to the project."""
        assert docker.belongs_to_project(name, "sample")

    @pytest.mark.parametrize("name", ["samples", "other_sample", "nginx"])
    def test_does_not_match(self, name):
        """Names merely containing the project name are left alone."""
        assert not docker.belongs_to_project(name, "sample")


class TestContainerDeployer:
    """Tests for deployer.deploy."""

    def test_dockerfile_deploy(self, host, spec, dockerfile_checkout):
        """Should build the image and run one restartable container on loopback."""
        with patch.object(dockerfile.time, "time", return_value=1700000000):
            deployer.deploy(spec, dockerfile_checkout)

        assert host.containers == ["sample_1700000000"]
        assert host.images == ["sample:latest"]
        run = next(argv for argv in host.remote_log if argv[:3] == ("sudo", "docker", "run"))
        assert "--restart" in run and run[run.index("--restart") + 1] == "unless-stopped"
        assert run[run.index("-p") + 1] == "127.0.0.1:3000:3000"

    def test_redeploy_leaves_one_container(self, host, spec, dockerfile_checkout):
        """A second deploy should replace the project container only."""
        host.containers = ["nginx-proxy", "other_1"]
        with patch.object(dockerfile.time, "time", return_value=1700000000):
            deployer.deploy(spec, dockerfile_checkout)
        with patch.object(dockerfile.time, "time", return_value=1700000100):
            deployer.deploy(spec, dockerfile_checkout)

        assert host.containers == ["nginx-proxy", "other_1", "sample_1700000100"]
        assert host.images == ["sample:latest"]

    def test_stale_containers_from_partial_run_removed(self, host, spec, dockerfile_checkout):
        """Leftovers of an interrupted run should be removed before building."""
        host.containers = ["sample_1", "sample_2"]
        host.images = ["sample:latest", "sample:old", "redis:7"]

        deployer.deploy(spec, dockerfile_checkout)

        assert len([c for c in host.containers if c.startswith("sample_")]) == 1
        assert host.images == ["redis:7", "sample:latest"]

    def test_compose_deploy_twice_one_stack(self, host, spec, compose_checkout):
        """Compose redeploys should reuse the project name and keep one stack."""
        deployer.deploy(spec, compose_checkout)
        deployer.deploy(spec, compose_checkout)

        assert sorted(host.containers) == ["sample-db-1", "sample-web-1"]
        up = [argv for argv in host.remote_log if "up" in argv]
        assert up[-1][:6] == ("sudo", "docker-compose", "-p", "sample", "-f",
                             "/home/deploy/sample/docker-compose.yml")

    def test_build_failure(self, host, spec, dockerfile_checkout):
        """A failed docker build should raise DeploymentError."""
        original = host.do_docker

        def failing_build(args, stdin):
            return (1, "") if args[0] == "build" else original(args, stdin)

        host.do_docker = failing_build
        with pytest.raises(DeploymentError, match="docker build"):
            deployer.deploy(spec, dockerfile_checkout)

    def test_unremovable_containers_abort(self, host, spec, dockerfile_checkout):
        """Should stop when a previous container cannot be removed."""
        host.containers = ["sample_1"]
        original = host.do_docker

        def failing_rm(args, stdin):
            return (1, "") if args[0] == "rm" else original(args, stdin)

        host.do_docker = failing_rm
        with pytest.raises(DeploymentError, match="previous containers"):
            deployer.deploy(spec, dockerfile_checkout)


class TestRemoteLock:
    """Tests for the host+project lock."""

    def test_acquire_and_release(self, host, spec):
        """Should create the lock dir with an owner record and remove it on release."""
        lock = RemoteLock(spec)
        with patch("hostdeploy.lock.time.time", return_value=1700000000):
            lock.acquire()

        assert host.exists(lock.path)
        assert host.paths[f"{lock.path}/owner"].split()[-1] == "1700000000"

        lock.release()
        assert not host.exists(lock.path)

    def test_fresh_lock_blocks(self, host, spec):
        """A live lock held by another run should raise LockError."""
        holder = RemoteLock(spec)
        holder.acquire()

        with pytest.raises(LockError, match="Another run"):
            RemoteLock(spec).acquire()

    def test_stale_lock_is_broken(self, host, spec):
        """A lock older than the staleness timeout should be taken over."""
        RemoteLock(spec).acquire()
        host.clock += 3600

        lock = RemoteLock(spec, stale_after=60)
        lock.acquire()

        assert lock.held

    def test_failed_owner_write_releases_lock(self, host, spec):
        """A lock dir whose owner record cannot be written should not be left behind."""
        host.fail_remote.add("tee")
        lock = RemoteLock(spec)

        with pytest.raises(LockError, match="lock owner record"):
            lock.acquire()

        assert not lock.held
        assert not host.exists(lock.path)

    def test_interrupt_during_acquire_releases_lock(self, host, spec, tmp_path):
        """Ctrl-C while recording the owner should still leave the host unlocked."""
        def interrupted(args, stdin):
            raise KeyboardInterrupt

        host.do_tee = interrupted
        pipeline = Pipeline(spec, workdir=tmp_path)

        with pytest.raises(KeyboardInterrupt):
            pipeline.decommission()
        pipeline.close()

        assert not host.exists("/tmp/hostdeploy-sample.lock")
