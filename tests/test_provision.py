"""Tests for idempotent environment convergence."""

import pytest

from hostdeploy import provision
from hostdeploy.errors import ProvisioningError, RemoteUnreachableError
from hostdeploy.remote import check_reachable


class TestConverge:
    """Tests for provision.converge."""

    def test_installs_everything_on_empty_host(self, host, spec):
        """An empty host gets docker, compose and nginx."""
        installed = provision.converge(spec)

        assert installed == ["docker", "docker-compose", "nginx"]
        assert host.installs == {"docker": 1, "docker-compose": 1, "nginx": 1}
        assert {"docker", "nginx"} <= host.active

    def test_second_run_installs_nothing(self, host, spec):
        """A provisioned host is left as is."""
        provision.converge(spec)
        second = provision.converge(spec)

        assert second == []
        assert host.installs == {"docker": 1, "docker-compose": 1, "nginx": 1}

    def test_only_missing_components_installed(self, host, spec):
        """Only components not found are installed."""
        host.binaries |= {"docker", "nginx"}

        assert provision.converge(spec) == ["docker-compose"]
        assert host.installs == {"docker-compose": 1}

    def test_compose_download_matches_remote_platform(self, host, spec):
        """The compose binary matches the remote uname."""
        provision.converge(spec)

        downloads = [argv for argv in host.remote_log if argv[:2] == ("sudo", "curl")]
        assert downloads[0][3].endswith("/docker-compose-Linux-x86_64")

    def test_redhat_family_nginx(self, host, spec):
        """nginx is installed with dnf/yum when apt-get is absent."""
        host.binaries = {"dnf", "curl", "systemctl"}

        provision.converge(spec)

        assert ("sudo", "dnf", "install", "-y", "nginx") in host.remote_log
        assert host.installs["nginx"] == 1

    def test_no_package_manager(self, host, spec):
        """No package manager is a provisioning error."""
        host.binaries = {"docker", "docker-compose", "curl", "systemctl"}

        with pytest.raises(ProvisioningError, match="nginx: no supported package manager"):
            provision.converge(spec)

    def test_install_failure_names_component(self, host, spec):
        """The error should name the component that failed."""
        host.fail_remote.add("sh")

        with pytest.raises(ProvisioningError, match="docker: install failed"):
            provision.converge(spec)

    def test_tls_placeholder_written_once(self, host, spec):
        """The ssl placeholder is created once and kept."""
        provision.converge(spec)
        host.paths["/etc/nginx/ssl/README"] = "edited by operator"
        provision.converge(spec)

        assert host.paths["/etc/nginx/ssl"] == "dir"
        assert host.paths["/etc/nginx/ssl/README"] == "edited by operator"


class TestRemoteProbe:
    """Tests for remote.check_reachable."""

    def test_reachable(self, host, spec):
        """A reachable host passes the probe."""
        check_reachable(spec)
        assert host.remote_log == [("true",)]

    def test_unreachable(self, host, spec):
        """An unreachable host raises RemoteUnreachableError."""
        host.reachable = False
        with pytest.raises(RemoteUnreachableError, match="SSH connectivity"):
            check_reachable(spec)
