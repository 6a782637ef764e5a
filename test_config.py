from scr.config import load_config, sample_kwargs

def test_load_config_defaults(tmp_path):
    default = tmp_path / 'default.yaml'
    default.write_text('draws: 100\ntune: 50\nchains: 2\ncores: 1\n'
                       'progressbar: false\nM: 10\n')
    scenario = tmp_path / 'scenario.yaml'
    scenario.write_text('model: closed\nM: 200\nxlim: [0, 100]\n')

    cfg = load_config(str(scenario), str(default))

    assert cfg.model == 'closed'
    assert cfg.M == 200
    assert cfg.draws == 100
    assert cfg.xlim == [0, 100]

    kwargs = sample_kwargs(cfg)
    assert kwargs == {'draws': 100, 'tune': 50, 'chains': 2, 'cores': 1,
                      'progressbar': False}

def test_load_config_nested(tmp_path):
    scenario = tmp_path / 'scenario.yaml'
    scenario.write_text('priors:\n  sigma_max: 5\n')

    cfg = load_config(str(scenario))

    assert cfg.priors.sigma_max == 5

def test_repo_configs_load():
    for scenario in ('closed', 'open'):
        cfg = load_config(f'config/{scenario}.yaml', 'config/default.yaml')
        assert cfg.model == scenario
        assert cfg.trial_count > 0
