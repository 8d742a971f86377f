"""Tests for the invocation coordinator."""

import os
import signal
import subprocess
import sys
import textwrap
import time
from pathlib import Path

import pytest

import rush_pnpm
from rush_pnpm.config import EnvironmentVariable
from rush_pnpm.environment import STORE_DIR_VARIABLE, WORKSPACE_DIR_VARIABLE
from rush_pnpm.errors import AlreadyReportedError, InvocationError, RushPnpmError
from rush_pnpm.invocation import FAILURE_EXIT_STATUS, InvocationOutcome, RushPnpmInvocation
from rush_pnpm.policy import BYPASS_NOTICE, RESYNC_NOTICE, RUSH_SKIP_CHECKS_PARAMETER
from rush_pnpm.spawn import SpawnResult, spawn_sync
from rush_pnpm.terminal import Terminal


def _invocation(config, spawner, base=None):
    return RushPnpmInvocation(config, Terminal(), spawner=spawner, base_environment=base or {})


class TestOutcome:
    def test_defaults_to_failure(self):
        outcome = InvocationOutcome()
        assert outcome.exit_status == FAILURE_EXIT_STATUS
        assert not outcome.succeeded


class TestExecute:
    def test_spawns_local_binary_with_arguments(self, rush_config, fake_spawner):
        outcome = _invocation(rush_config, fake_spawner).execute(["run", "build"])

        assert outcome.exit_status == 0
        executable, args, _env = fake_spawner.calls[0]
        assert executable == rush_config.package_manager_tool_filename
        assert args == ["run", "build"]

    def test_environment_is_merged(self, rush_config, fake_spawner):
        rush_config.pnpm_options.environment_variables.update({
            "KEEP": EnvironmentVariable(value="declared"),
            "FORCE": EnvironmentVariable(value="declared", override=True),
        })
        _invocation(rush_config, fake_spawner, base={"KEEP": "base", "FORCE": "base"}).execute(["ls"])

        env = fake_spawner.calls[0][2]
        assert env[WORKSPACE_DIR_VARIABLE] == str(rush_config.common_temp_folder)
        assert env[STORE_DIR_VARIABLE] == str(rush_config.pnpm_store_path)
        assert env["KEEP"] == "base"
        assert env["FORCE"] == "declared"

    def test_bypass_token_is_stripped_before_spawn(self, rush_config, fake_spawner):
        _invocation(rush_config, fake_spawner).execute([RUSH_SKIP_CHECKS_PARAMETER, "add", "foo"])
        assert fake_spawner.calls[0][1] == ["add", "foo"]

    def test_child_exit_code_is_forwarded(self, rush_config, make_spawner):
        spawner = make_spawner(SpawnResult(status=7))
        outcome = _invocation(rush_config, spawner).execute(["test"])
        assert outcome.exit_status == 7
        assert outcome.failure_reason

    def test_warning_for_state_mutating_verb(self, rush_config, fake_spawner, capsys):
        outcome = _invocation(rush_config, fake_spawner).execute(["update", "react"])
        assert outcome.succeeded
        assert len(fake_spawner.calls) == 1
        err = capsys.readouterr().err
        assert "may invalidate" in err
        assert RESYNC_NOTICE in err


class TestRejection:
    @pytest.mark.parametrize("args", [["install"], ["import"], ["dedupe"], ["--foo"], ["add", "x", RUSH_SKIP_CHECKS_PARAMETER]])
    def test_rejected_commands_never_spawn(self, rush_config, fake_spawner, args):
        with pytest.raises(AlreadyReportedError):
            _invocation(rush_config, fake_spawner).execute(args)
        assert fake_spawner.calls == []

    def test_rejection_output(self, rush_config, fake_spawner, capsys):
        with pytest.raises(AlreadyReportedError):
            _invocation(rush_config, fake_spawner).execute(["add", "left-pad"])
        captured = capsys.readouterr()
        assert '"pnpm add"' in captured.err
        assert BYPASS_NOTICE in captured.out

    def test_no_sync_path_for_rejected_install(self, rush_config, fake_spawner):
        rush_config.temp_patches_folder.mkdir()
        with pytest.raises(AlreadyReportedError):
            _invocation(rush_config, fake_spawner).execute(["install"])
        assert not rush_config.committed_patches_folder.exists()


class TestSpawnFailures:
    def test_spawn_error(self, rush_config, make_spawner):
        spawner = make_spawner(SpawnResult(error=FileNotFoundError(2, "No such file")))
        with pytest.raises(InvocationError, match="Failed to invoke PNPM"):
            _invocation(rush_config, spawner).execute(["ls"])

    def test_no_exit_code(self, rush_config, make_spawner):
        spawner = make_spawner(SpawnResult(status=None))
        with pytest.raises(InvocationError, match="without an exit code"):
            _invocation(rush_config, spawner).execute(["ls"])


class TestPostInvocation:
    def _stage(self, config):
        config.temp_patches_folder.mkdir()
        (config.temp_patches_folder / "a.patch").write_text("+a\n", encoding="utf-8")
        config.temp_shrinkwrap_filename.write_text("lock\n", encoding="utf-8")

    def test_patch_commit_syncs_on_success(self, rush_config, fake_spawner):
        self._stage(rush_config)
        _invocation(rush_config, fake_spawner).execute(["patch-commit", "/tmp/edit"])
        assert (rush_config.committed_patches_folder / "a.patch").exists()
        assert rush_config.committed_shrinkwrap_filename.exists()

    def test_patch_commit_skips_sync_on_failure(self, rush_config, make_spawner):
        self._stage(rush_config)
        outcome = _invocation(rush_config, make_spawner(SpawnResult(status=1))).execute(["patch-commit", "x"])
        assert outcome.exit_status == 1
        assert not rush_config.committed_patches_folder.exists()

    def test_other_verbs_do_not_sync(self, rush_config, fake_spawner):
        self._stage(rush_config)
        _invocation(rush_config, fake_spawner).execute(["patch", "left-pad"])
        assert not rush_config.committed_patches_folder.exists()

    def test_sync_failure_is_reported(self, rush_config, fake_spawner, monkeypatch):
        self._stage(rush_config)

        def broken_copy(source, destination):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr("rush_pnpm.sync.copy_files", broken_copy)
        with pytest.raises(RushPnpmError, match="synchronizing"):
            _invocation(rush_config, fake_spawner).execute(["patch-commit", "x"])


class TestSpawnSync:
    def test_real_process_exit_code(self, tmp_path):
        result = spawn_sync(sys.executable, ["-c", "import sys; sys.exit(3)"], {})
        assert result.status == 3
        assert result.error is None

    def test_environment_reaches_child(self, tmp_path):
        out = tmp_path / "out.txt"
        script = f"import os; open({str(out)!r}, 'w').write(os.environ['MARKER'])"
        result = spawn_sync(sys.executable, ["-c", script], {"MARKER": "hello"})
        assert result.status == 0
        assert out.read_text() == "hello"

    def test_missing_executable(self, tmp_path):
        result = spawn_sync(tmp_path / "no-such-binary", [], {})
        assert result.status is None
        assert isinstance(result.error, OSError)

    def test_nul_byte_in_environment_is_a_spawn_error(self):
        result = spawn_sync(sys.executable, ["-c", "pass"], {"BAD": "a\x00b"})
        assert result.status is None
        assert isinstance(result.error, ValueError)


_CHILD_WITH_SLOW_SIGINT_HANDLER = textwrap.dedent("""
    import pathlib, signal, sys, time

    ready, marker = sys.argv[1], sys.argv[2]

    def on_sigint(signum, frame):
        time.sleep(1)
        pathlib.Path(marker).write_text("cleaned up")
        sys.exit(130)

    signal.signal(signal.SIGINT, on_sigint)
    pathlib.Path(ready).write_text("ready")
    while True:
        time.sleep(0.1)
""")

_DRIVER = textwrap.dedent("""
    import os, sys
    from rush_pnpm.spawn import spawn_sync

    result = spawn_sync(sys.executable, sys.argv[1:], dict(os.environ))
    sys.exit(99 if result.status is None else result.status)
""")


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX process groups")
class TestInterruptDuringSpawn:
    def test_child_handles_its_own_sigint(self, tmp_path):
        child = tmp_path / "child.py"
        child.write_text(_CHILD_WITH_SLOW_SIGINT_HANDLER, encoding="utf-8")
        ready, marker = tmp_path / "ready", tmp_path / "marker"

        src_dir = Path(rush_pnpm.__file__).resolve().parents[1]
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(src_dir), env.get("PYTHONPATH")]))

        driver = subprocess.Popen(
            [sys.executable, "-c", _DRIVER, str(child), str(ready), str(marker)],
            env=env,
            stdout=subprocess.DEVNULL,
            start_new_session=True,
        )
        try:
            deadline = time.monotonic() + 15
            while not ready.exists():
                assert driver.poll() is None, "driver exited before the child was ready"
                assert time.monotonic() < deadline, "child never became ready"
                time.sleep(0.05)

            os.killpg(driver.pid, signal.SIGINT)
            returncode = driver.wait(timeout=15)
        finally:
            if driver.poll() is None:
                os.killpg(driver.pid, signal.SIGKILL)
                driver.wait()

        assert marker.read_text() == "cleaned up"
        assert returncode == 130
