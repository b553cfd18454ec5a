"""Unit tests for the cadence CLI (discovery, argument handling, check)."""

from __future__ import annotations

import argparse
import textwrap
from collections.abc import Iterator
from pathlib import Path

import pytest

from cadence.core.app import Cadence
from cadence.core.cli import (
    _parse_locator,
    _resolve_module_argument,
    build_parser,
    check_command,
    discover_app,
)
from cadence.core.errors import ConfigurationError, ErrorCode
from cadence.core.utils.imports import is_file_locator

pytestmark = pytest.mark.unit


@pytest.fixture
def app_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """A standalone module defining one Cadence app with one declared job."""
    path = tmp_path / 'jobs_app.py'
    path.write_text(
        textwrap.dedent(
            """
            from cadence import Cadence, DailyRecurrence

            app = Cadence()

            @app.job('nightly', DailyRecurrence(hour=3))
            def nightly():
                return 'done'
            """
        )
    )
    monkeypatch.chdir(tmp_path)
    yield path


class TestParseLocator:
    def test_module_and_attribute(self) -> None:
        assert _parse_locator('app.jobs:app') == ('app.jobs', 'app')

    def test_module_only(self) -> None:
        assert _parse_locator('app.jobs') == ('app.jobs', None)

    def test_file_path_with_attribute(self) -> None:
        assert _parse_locator('app/jobs.py:app') == ('app/jobs.py', 'app')

    @pytest.mark.parametrize(
        ('value', 'expected'),
        [('app/jobs.py', True), ('jobs.py', True), ('app.jobs', False)],
    )
    def test_is_file_locator(self, value: str, expected: bool) -> None:
        assert is_file_locator(value) is expected


class TestResolveModuleArgument:
    def test_flag_wins(self) -> None:
        args = argparse.Namespace(module='a:app', module_pos='b:app')

        assert _resolve_module_argument(args) == 'a:app'

    def test_positional(self) -> None:
        args = argparse.Namespace(module=None, module_pos='b:app')

        assert _resolve_module_argument(args) == 'b:app'

    def test_missing_raises(self) -> None:
        args = argparse.Namespace(module=None, module_pos=None)

        with pytest.raises(ConfigurationError) as exc_info:
            _resolve_module_argument(args)

        assert exc_info.value.code == ErrorCode.CLI_INVALID_ARGS


class TestDiscoverApp:
    def test_file_path_with_attribute(self, app_file: Path) -> None:
        app, var_name, _ = discover_app(f'{app_file}:app')

        assert isinstance(app, Cadence)
        assert var_name == 'app'
        assert [j.name for j in app.list_jobs()] == ['nightly']

    def test_auto_discovers_single_instance(self, app_file: Path) -> None:
        app, var_name, _ = discover_app(str(app_file))

        assert var_name == 'app'
        assert isinstance(app, Cadence)

    def test_missing_attribute(self, app_file: Path) -> None:
        with pytest.raises(AttributeError, match="no attribute 'nope'"):
            discover_app(f'{app_file}:nope')

    def test_wrong_type(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / 'not_app.py'
        path.write_text('app = 42\n')
        monkeypatch.chdir(tmp_path)

        with pytest.raises(TypeError, match='not a Cadence instance'):
            discover_app(f'{path}:app')

    def test_no_instance(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / 'empty_app.py'
        path.write_text('value = 1\n')
        monkeypatch.chdir(tmp_path)

        with pytest.raises(AttributeError, match='No Cadence instance'):
            discover_app(str(path))

    def test_ambiguous_instances(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / 'two_apps.py'
        path.write_text('from cadence import Cadence\none = Cadence()\ntwo = Cadence()\n')
        monkeypatch.chdir(tmp_path)

        with pytest.raises(AttributeError, match='Multiple Cadence instances'):
            discover_app(str(path))

    def test_unknown_module(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            discover_app('definitely_not_a_module_xyz:app')

        assert exc_info.value.code == ErrorCode.CLI_INVALID_ARGS


class TestParser:
    def test_run_defaults(self) -> None:
        args = build_parser().parse_args(['run', 'app.jobs:app'])

        assert args.command == 'run'
        assert args.module_pos == 'app.jobs:app'
        assert args.loglevel == 'INFO'

    def test_loglevel_is_case_insensitive(self) -> None:
        args = build_parser().parse_args(['check', '-m', 'app.jobs:app', '--loglevel', 'debug'])

        assert args.module == 'app.jobs:app'
        assert args.loglevel == 'DEBUG'

    def test_invalid_loglevel_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(['run', 'x', '--loglevel', 'LOUD'])


class TestCheckCommand:
    def test_prints_config_and_jobs(
        self, app_file: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = build_parser().parse_args(['check', f'{app_file}:app'])

        with pytest.raises(SystemExit) as exc_info:
            check_command(args)

        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert 'ok: app configuration is valid' in out
        assert 'database: none (in-memory only)' in out
        assert '1 job(s) registered' in out
        assert 'nightly [active] every day at 03:00' in out

    def test_missing_module_exits_with_error(self) -> None:
        args = build_parser().parse_args(['check'])

        with pytest.raises(SystemExit) as exc_info:
            check_command(args)

        assert exc_info.value.code == 1
