from typing import Optional

import yaml
import logging

class Config(dict):
    """Scenario settings read from yaml, with attribute access."""
    def __getattr__(self, key):
        try:
            val = self[key]
        except KeyError:
            return super().__getattribute__(key)
        if isinstance(val, dict):
            return Config(val)
        return val

def load_config(path: str, default_path: Optional[str] = None) -> Config:
    with open(path) as f:
        cfg = Config(yaml.full_load(f))
    if default_path is not None:
        # set keys not included in `path` by default
        with open(default_path) as f:
            default_cfg = Config(yaml.full_load(f))
        for key, val in default_cfg.items():
            if key not in cfg:
                logging.debug(f"used default config {key}: {val}")
                cfg[key] = val
    return cfg

def sample_kwargs(cfg: Config) -> dict:
    '''Arguments for pm.sample taken from the scenario config.'''
    return {
        'draws': cfg.draws,
        'tune': cfg.tune,
        'chains': cfg.chains,
        'cores': cfg.cores,
        'progressbar': cfg.progressbar
    }
