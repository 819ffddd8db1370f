def test_help_in_root(invoke):
    result = invoke(['--help'])
    assert result.exit_code == 0
    assert 'Usage: consul-operator [OPTIONS]' in result.output
    assert ' run' in result.output


def test_help_in_run(invoke, real_run):
    result = invoke(['run', '--help'])
    assert result.exit_code == 0
    assert not real_run.called
    assert 'Usage: consul-operator run [OPTIONS]' in result.output
    assert '--kubeconfig' in result.output
    assert '-n, --namespace' in result.output
    assert '-w, --workers' in result.output
    assert '--sync-timeout' in result.output
    assert '--skip-registration' in result.output
    assert '--log-format' in result.output
