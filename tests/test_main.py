import json

import pytest

import shipyard.__main__ as cli
from shipyard.runner.stage import Stage

ARGS = [
    'run',
    '--repository-url',
    'https://github.com/example/orders.git',
    '--branch',
    'main',
    '--scanner-project-key',
    'orders',
]


def test_parse_args_defaults_to_skipping_tests():
    args = cli.parse_args(ARGS)
    assert args.skip_tests is True
    assert args.run_number is None
    assert cli.parse_args([*ARGS, '--no-skip-tests']).skip_tests is False


def test_run_number_sources(monkeypatch, tmp_path):
    monkeypatch.setattr(cli.config, 'data_dir', tmp_path)
    assert cli.get_run_number(cli.parse_args([*ARGS, '--run-number', '5'])) == 5
    monkeypatch.setenv('BUILD_NUMBER', '17')
    assert cli.get_run_number(cli.parse_args(ARGS)) == 17


def test_explicit_run_number_is_never_handed_out_again(monkeypatch, tmp_path):
    monkeypatch.setattr(cli.config, 'data_dir', tmp_path)

    assert cli.get_run_number(cli.parse_args([*ARGS, '--run-number', '12'])) == 12
    assert cli.get_run_number(cli.parse_args(ARGS)) == 13


def test_non_numeric_build_number_is_a_usage_error(monkeypatch, capsys):
    monkeypatch.setenv('BUILD_NUMBER', 'nightly')

    with pytest.raises(SystemExit) as e:
        cli.parse_args(ARGS)
    assert e.value.code == 2
    assert "invalid int value: 'nightly'" in capsys.readouterr().err


@pytest.mark.parametrize('fail, exit_code', [(False, 0), (True, 1)])
def test_main_exit_code(monkeypatch, tmp_path, make_runner, capsys, fail, exit_code):
    monkeypatch.setattr(cli.config, 'data_dir', tmp_path)

    async def body(stage):
        if fail:
            raise RuntimeError('broken')

    def runner_factory(parameters, run_number):
        return make_runner(
            parameters=parameters, run_number=run_number, stages=[Stage('only', body)]
        )

    monkeypatch.setattr(cli, 'PipelineRunner', runner_factory)

    assert cli.main([*ARGS, '--run-number', '9']) == exit_code
    result = json.loads(capsys.readouterr().out)
    assert result['runNumber'] == 9
    assert result['buildIdentifier'] == '2024-06-01-9'
    assert result['status'] == ('failed' if fail else 'succeeded')
