"""Unit tests for the mesh deployment orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, call, patch

import pytest

from meshctl.config.models import MeshConfig
from meshctl.deployment import MeshDeployer, Operation, RunState, ServiceState
from meshctl.deployment.constants import DeploymentPaths
from meshctl.deployment.errors import (
    CommandError,
    DeploymentError,
    DuplicateService,
    NamespaceError,
    ServiceNotFound,
)
from meshctl.deployment.shell_commands import CommandResult
from meshctl.utils.console_like import LoguruConsole

MakeService = Callable[[str, dict[str, str]], Path]

FAILED = CommandResult(success=False, stderr="boom", returncode=1)


@pytest.fixture
def cache_service(make_service: MakeService) -> Path:
    return make_service(
        "cache",
        {
            "configmap.yaml": "metadata:\n  namespace: {{ namespace }}\n",
            "dm.yaml": "image: cache:{{ tag }}\n",
        },
    )


@pytest.fixture
def build_deployer(
    mesh_root: Path, mock_commands: MagicMock, mock_console: MagicMock
) -> Callable[..., MeshDeployer]:
    """Create a MeshDeployer over the fixture tree with mocked commands."""

    def _build(namespace: str | None = None, **config: Any) -> MeshDeployer:
        config.setdefault("vars", {"namespace": "team", "tag": "1.0"})
        return MeshDeployer(
            mock_console,
            mesh_root,
            MeshConfig(**config),
            commands=mock_commands,
            paths=DeploymentPaths(mesh_root, "output", share_storage=mesh_root / "share"),
            namespace=namespace,
        )

    return _build


def _kubectl_call_names(commands: MagicMock) -> list[str]:
    return [c[0] for c in commands.kubectl.mock_calls]


class TestConstruction:
    def test_plan_and_states_are_ready_before_any_side_effect(
        self, build_deployer: Callable[..., MeshDeployer], cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        deployer = build_deployer(service=["cache"])

        assert list(deployer.plan) == ["cache"]
        assert deployer.service_states == {"cache": ServiceState.PENDING}
        assert deployer.run_state is RunState.PENDING
        assert mock_commands.mock_calls == []

    def test_missing_console_falls_back_to_loguru(
        self, mesh_root: Path, mock_commands: MagicMock, cache_service: Path
    ) -> None:
        deployer = MeshDeployer(
            None, mesh_root, MeshConfig(service=["cache"]), commands=mock_commands
        )

        assert isinstance(deployer.console, LoguruConsole)

    def test_duplicate_service_aborts_construction(
        self, build_deployer: Callable[..., MeshDeployer], cache_service: Path
    ) -> None:
        with pytest.raises(DuplicateService):
            build_deployer(service=["cache", "cache"])


class TestNamespace:
    def test_override_wins_over_vars(
        self, build_deployer: Callable[..., MeshDeployer], cache_service: Path
    ) -> None:
        assert build_deployer(namespace="other", service=["cache"]).namespace == "other"

    def test_vars_namespace_is_used(
        self, build_deployer: Callable[..., MeshDeployer], cache_service: Path
    ) -> None:
        assert build_deployer(service=["cache"]).namespace == "team"

    @patch("meshctl.deployment.orchestrator.getpass.getuser", return_value="alice")
    def test_falls_back_to_user_name(
        self,
        mock_getuser: MagicMock,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
    ) -> None:
        deployer = build_deployer(service=["cache"], vars={"tag": "1.0"})

        assert deployer.namespace == "alice"
        mock_getuser.assert_called_once_with()

    @patch("meshctl.deployment.orchestrator.getpass.getuser", side_effect=KeyError("uid"))
    def test_user_lookup_failure_is_fatal(
        self,
        mock_getuser: MagicMock,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
    ) -> None:
        deployer = build_deployer(service=["cache"], vars={})

        with pytest.raises(NamespaceError):
            _ = deployer.namespace

    def test_ensure_namespace_creates_missing_namespace(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        mock_commands.kubectl.namespace_exists.return_value = False

        build_deployer(service=["cache"]).ensure_namespace()

        mock_commands.kubectl.create_namespace.assert_called_once_with("team")

    def test_create_failure_aborts_the_run(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        mock_commands.kubectl.namespace_exists.return_value = False
        mock_commands.kubectl.create_namespace.return_value = FAILED
        deployer = build_deployer(service=["cache"])

        with pytest.raises(NamespaceError):
            deployer.deploy()

        assert deployer.run_state is RunState.ABORTED
        mock_commands.kubectl.apply.assert_not_called()


class TestGenerate:
    def test_generate_writes_two_files_and_touches_no_cluster(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        deployer = build_deployer(service=["cache"])

        deployer.generate()

        out_dir = mesh_root / "output" / "cache"
        assert sorted(p.name for p in out_dir.iterdir()) == ["configmap.yaml", "dm.yaml"]
        assert (out_dir / "dm.yaml").read_text() == "image: cache:1.0\n"
        assert mock_commands.kubectl.mock_calls == []
        assert deployer.run_state is RunState.COMPLETE
        assert deployer.service_states["cache"] is ServiceState.DONE

    def test_pre_clean_removes_stale_output(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
    ) -> None:
        stale = mesh_root / "output" / "old" / "dm.yaml"
        stale.parent.mkdir(parents=True)
        stale.write_text("stale")

        build_deployer(service=["cache"]).generate()

        assert not stale.exists()

    def test_pre_clean_refuses_the_tree_root(
        self, mesh_root: Path, mock_commands: MagicMock, cache_service: Path
    ) -> None:
        deployer = MeshDeployer(
            MagicMock(),
            mesh_root,
            MeshConfig(service=["cache"]),
            commands=mock_commands,
            paths=DeploymentPaths(mesh_root, str(mesh_root), share_storage=mesh_root / "share"),
        )

        with pytest.raises(DeploymentError, match="Refusing"):
            deployer.generate()

        assert (mesh_root / "mesh").is_dir()

    @pytest.mark.parametrize("output_path", ["mesh", "mesh/out", "mesh/cache"])
    def test_pre_clean_refuses_the_template_catalog(
        self,
        output_path: str,
        mesh_root: Path,
        mock_commands: MagicMock,
        cache_service: Path,
    ) -> None:
        deployer = MeshDeployer(
            MagicMock(),
            mesh_root,
            MeshConfig(service=["cache"]),
            commands=mock_commands,
            paths=DeploymentPaths(mesh_root, output_path, share_storage=mesh_root / "share"),
        )

        with pytest.raises(DeploymentError, match="Refusing"):
            deployer.generate()

        assert (cache_service / "dm.yaml").is_file()
        assert (mesh_root / "mesh" / "sync.sh").is_file()
        mock_commands.run_bash_script.assert_not_called()

    def test_sync_failure_aborts_before_rendering(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        mock_commands.run_bash_script.side_effect = CommandError(["bash", "sync.sh"], FAILED)
        deployer = build_deployer(service=["cache"])

        with pytest.raises(CommandError):
            deployer.generate()

        mock_commands.run_bash_script.assert_called_once_with(mesh_root / "mesh" / "sync.sh")
        assert not (mesh_root / "output" / "cache").exists()
        assert deployer.run_state is RunState.ABORTED

    def test_share_storage_is_created(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
    ) -> None:
        build_deployer(service=["cache"]).generate()

        assert (mesh_root / "share").is_dir()


class TestDeploy:
    def test_config_map_is_applied_before_the_directory(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(service=["cache"]).deploy()

        out_dir = mesh_root / "output" / "cache"
        assert mock_commands.kubectl.apply.call_args_list == [
            call(out_dir / "configmap.yaml"),
            call(out_dir),
        ]

    def test_services_without_config_map_apply_directory_only(
        self,
        build_deployer: Callable[..., MeshDeployer],
        make_service: MakeService,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        make_service("web", {"dm.yaml": "kind: Deployment\n"})

        build_deployer(service=["web"]).deploy()

        mock_commands.kubectl.apply.assert_called_once_with(mesh_root / "output" / "web")

    def test_skip_inject_service_toggles_injection_around_apply(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(service=["cache"], skip_inject_service=["cache"]).deploy()

        assert _kubectl_call_names(mock_commands) == [
            "namespace_exists",
            "label_namespace",
            "apply",
            "apply",
            "label_namespace",
        ]
        assert mock_commands.kubectl.label_namespace.call_args_list == [
            call("team", "istio-injection", "disabled"),
            call("team", "istio-injection", "enabled"),
        ]

    def test_injection_is_re_enabled_when_apply_fails(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        mock_commands.kubectl.apply.return_value = FAILED
        deployer = build_deployer(service=["cache"], skip_inject_service=["cache"])

        with pytest.raises(CommandError):
            deployer.deploy()

        assert _kubectl_call_names(mock_commands)[-2:] == ["apply", "label_namespace"]
        assert mock_commands.kubectl.label_namespace.call_args == call(
            "team", "istio-injection", "enabled"
        )
        assert deployer.service_states["cache"] is ServiceState.FAILED
        assert deployer.run_state is RunState.ABORTED

    def test_restore_failure_does_not_hide_the_apply_error(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
        mock_console: MagicMock,
    ) -> None:
        ok = CommandResult(success=True, stdout="ok")
        mock_commands.kubectl.apply.return_value = FAILED
        mock_commands.kubectl.label_namespace.side_effect = [ok, FAILED]
        deployer = build_deployer(service=["cache"], skip_inject_service=["cache"])

        with pytest.raises(CommandError) as excinfo:
            deployer.deploy()

        assert excinfo.value.cmd[:2] == ["kubectl", "apply"]
        assert mock_commands.kubectl.label_namespace.call_count == 2
        mock_console.error.assert_called_once()
        assert "Re-enable sidecar injection" in mock_console.error.call_args.args[0]

    def test_config_map_failure_stops_before_the_directory_apply(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        mock_commands.kubectl.apply.return_value = FAILED
        deployer = build_deployer(service=["cache"])

        with pytest.raises(CommandError) as excinfo:
            deployer.deploy()

        assert mock_commands.kubectl.apply.call_count == 1
        mock_commands.kubectl.apply.assert_called_once_with(
            mesh_root / "output" / "cache" / "configmap.yaml"
        )
        assert excinfo.value.cmd[-1].endswith("configmap.yaml")
        assert deployer.service_states["cache"] is ServiceState.FAILED

    def test_reused_deployer_applies_after_generate(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        deployer = build_deployer(service=["cache"])
        deployer.generate()
        mock_commands.kubectl.apply.assert_not_called()

        deployer.deploy()

        assert mock_commands.kubectl.apply.call_count == 2
        assert deployer.service_states == {"cache": ServiceState.DONE}
        assert deployer.run_state is RunState.COMPLETE

    def test_run_after_an_abort_starts_from_pending(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        ok = CommandResult(success=True, stdout="ok")
        mock_commands.kubectl.apply.side_effect = [FAILED, ok, ok]
        deployer = build_deployer(service=["cache"])

        with pytest.raises(CommandError):
            deployer.deploy()
        assert deployer.run_state is RunState.ABORTED

        deployer.deploy()

        assert deployer.run_state is RunState.COMPLETE
        assert deployer.service_states["cache"] is ServiceState.DONE

    def test_other_services_leave_injection_alone(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(service=["cache"], skip_inject_service=["web"]).deploy()

        mock_commands.kubectl.label_namespace.assert_not_called()

    def test_earlier_services_stay_applied_after_a_failure(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        make_service: MakeService,
    ) -> None:
        make_service("web", {"dm.yaml": "image: {{ missing }}\n"})
        deployer = build_deployer(service=["cache", "web"])

        with pytest.raises(DeploymentError):
            deployer.deploy()

        assert deployer.service_states == {
            "cache": ServiceState.DONE,
            "web": ServiceState.FAILED,
        }

    def test_plan_entry_missing_from_catalog_is_fatal(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
    ) -> None:
        deployer = build_deployer(service=["cache"], must_deps=["ghost"])

        with pytest.raises(ServiceNotFound, match="ghost"):
            deployer.deploy()

    def test_done_service_is_skipped(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
    ) -> None:
        deployer = build_deployer(service=["cache"])
        deployer.deploy_service("cache", apply=False)
        rendered = mesh_root / "output" / "cache" / "dm.yaml"
        rendered.unlink()

        deployer.deploy_service("cache", apply=False)

        assert not rendered.exists()


class TestTeardown:
    def test_deletes_every_kind_then_namespace(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(service=["cache"]).teardown()

        kubectl = mock_commands.kubectl
        assert kubectl.delete_all.call_args_list == [
            call("deployment", "team", force=True),
            call("daemonsets", "team", force=True),
            call("pods", "team", force=True),
            call("service", "team", force=False),
            call("configmap", "team", force=False),
            call("vs", "team", force=False),
            call("dr", "team", force=False),
        ]
        kubectl.delete_namespace.assert_called_once_with("team")

    def test_default_namespace_is_never_deleted(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(namespace="default", service=["cache"]).teardown()

        assert mock_commands.kubectl.delete_all.call_count == 7
        mock_commands.kubectl.delete_namespace.assert_not_called()

    def test_failed_deletes_are_reported_and_skipped(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
        mock_console: MagicMock,
    ) -> None:
        mock_commands.kubectl.delete_all.return_value = FAILED

        build_deployer(service=["cache"]).teardown()

        assert mock_console.warn.call_count == 7
        mock_commands.kubectl.delete_namespace.assert_called_once_with("team")

    def test_restart_tears_down_before_deploying(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(service=["cache"]).restart()

        names = _kubectl_call_names(mock_commands)
        assert names.index("delete_namespace") < names.index("apply")


class TestQueries:
    def test_status_lists_every_kind(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        build_deployer(service=["cache"]).show_status()

        assert [c.args[0] for c in mock_commands.kubectl.get.call_args_list] == [
            "deployment",
            "daemonsets",
            "pods",
            "service",
            "configmap",
            "vs",
            "dr",
        ]

    def test_node_ports_keeps_header_and_node_port_rows(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
        mock_console: MagicMock,
    ) -> None:
        mock_commands.kubectl.get.return_value = CommandResult(
            success=True,
            stdout=(
                "NAME    TYPE        CLUSTER-IP   PORT(S)\n"
                "cache   ClusterIP   10.0.0.1     6379/TCP\n"
                "web     NodePort    10.0.0.2     80:30080/TCP\n"
            ),
        )

        build_deployer(service=["cache"]).show_node_ports()

        printed = [c.args[0] for c in mock_console.print.call_args_list]
        assert len(printed) == 2
        assert "NAME" in printed[0]
        assert printed[1].startswith("web")

    def test_follow_logs_picks_first_matching_pod(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        mock_commands.kubectl.get_pod_names.return_value = ["web-1", "cache-7d9f", "cache-2"]
        deployer = build_deployer(service=["cache"])

        deployer.follow_logs("cache", tail=20, since="5m")

        args, kwargs = mock_commands.kubectl.follow_logs.call_args
        assert args == ("team", "cache-7d9f", "cache")
        assert kwargs["tail"] == 20
        assert kwargs["since"] == "5m"

    def test_follow_logs_without_pods_reports_error(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
        mock_console: MagicMock,
    ) -> None:
        build_deployer(service=["cache"]).follow_logs("cache")

        mock_console.error.assert_called_once()
        mock_commands.kubectl.follow_logs.assert_not_called()


class TestSingleService:
    def test_start_service_renders_and_applies_one_service(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        make_service: MakeService,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        make_service("web", {"dm.yaml": "kind: Deployment\n"})

        build_deployer(service=["cache", "web"]).start_service("web")

        mock_commands.kubectl.apply.assert_called_once_with(mesh_root / "output" / "web")
        mock_commands.run_bash_script.assert_not_called()

    def test_start_unknown_service_is_fatal(
        self, build_deployer: Callable[..., MeshDeployer], cache_service: Path
    ) -> None:
        with pytest.raises(ServiceNotFound):
            build_deployer(service=["cache"]).start_service("ghost")

    def test_stop_without_rendered_output_warns(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
        mock_console: MagicMock,
    ) -> None:
        build_deployer(service=["cache"]).stop_service("cache")

        mock_console.warn.assert_called_once()
        mock_commands.kubectl.delete_manifests.assert_not_called()

    def test_reload_deletes_then_applies(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mesh_root: Path,
        mock_commands: MagicMock,
    ) -> None:
        deployer = build_deployer(service=["cache"])
        deployer.generate()

        deployer.reload_service("cache")

        names = _kubectl_call_names(mock_commands)
        assert names.index("delete_manifests") < names.index("apply")
        mock_commands.kubectl.delete_manifests.assert_called_once_with(
            mesh_root / "output" / "cache"
        )
        assert deployer.service_states["cache"] is ServiceState.DONE


class TestDispatch:
    @pytest.mark.parametrize(
        ("op", "method"),
        [
            (Operation.START, "deploy"),
            (Operation.STOP, "teardown"),
            (Operation.RESTART, "restart"),
            (Operation.GENERATE, "generate"),
            (Operation.STATUS, "show_status"),
            (Operation.PORT, "show_node_ports"),
        ],
    )
    def test_whole_mesh_operations(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        op: Operation,
        method: str,
    ) -> None:
        deployer = build_deployer(service=["cache"])
        with patch.object(deployer, method) as mock_method:
            deployer.dispatch(op)

        mock_method.assert_called_once()

    def test_pods_and_services_query_one_kind(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        mock_commands: MagicMock,
    ) -> None:
        deployer = build_deployer(service=["cache"])

        deployer.dispatch(Operation.PODS)
        deployer.dispatch(Operation.SERVICES)

        assert mock_commands.kubectl.get.call_args_list == [
            call("pods", "team"),
            call("service", "team"),
        ]

    def test_logs_forwards_tail_and_since(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
    ) -> None:
        deployer = build_deployer(service=["cache"])
        with patch.object(deployer, "follow_logs") as mock_follow:
            deployer.dispatch(Operation.LOGS, "cache", tail=10, since="1h")

        mock_follow.assert_called_once_with("cache", tail=10, since="1h")

    @pytest.mark.parametrize(
        "op",
        [
            Operation.LOGS,
            Operation.SERVICE_START,
            Operation.SERVICE_STOP,
            Operation.SERVICE_RELOAD,
        ],
    )
    def test_service_operations_need_a_name(
        self,
        build_deployer: Callable[..., MeshDeployer],
        cache_service: Path,
        op: Operation,
    ) -> None:
        with pytest.raises(DeploymentError, match="needs a service name"):
            build_deployer(service=["cache"]).dispatch(op)
