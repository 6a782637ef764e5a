"""Simulates trial_count datasets for a scenario.

Wraps the simulation code in model.py. Each trial is written to
sim_data/<scenario>/trial_<i>.json, holding the observed data alongside the
true latent state so that estimates can be compared against the truth.

Typical usage example:
    $ python -m scr.simulate --scenario closed
"""
import argparse
import json
import os
import logging

import numpy as np
from tqdm import tqdm

from scr.config import load_config, Config
from scr.model import get_model
from scr.traps import trap_grid

def parse():
    '''Parses arguments from the command line'''
    parser = argparse.ArgumentParser(description="Simulating scenario")
    parser.add_argument('-s', "--scenario", default="closed")
    parser.add_argument('-c', "--config_dir", default="config")
    parser.add_argument('-o', "--out_dir", default="sim_data")
    return parser.parse_args()

class NumpyEncoder(json.JSONEncoder):
    '''Easy conversion between numpy and json.'''
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        return json.JSONEncoder.default(self, obj)

def main():
    '''Simulate trial_count datasets for the scenario.'''
    args = parse()

    config_path = f'{args.config_dir}/{args.scenario}.yaml'
    cfg = load_config(config_path, f'{args.config_dir}/default.yaml')

    simulate_scenario(cfg, args.scenario, args.out_dir)

    return None

def build_traps(cfg: Config) -> np.ndarray:
    '''Regular trap grid described by the scenario config.'''
    return trap_grid(cfg.xlim, cfg.ylim, count=cfg.trap_count,
                     buffer=cfg.get('trap_buffer', 0.))

def simulate_trial(cfg: Config, seed: int = None) -> dict:
    '''Simulate a single dataset under the scenario's model.'''
    traps = build_traps(cfg)
    model = get_model(cfg.model, seed=seed)

    if cfg.model == 'closed':
        sim = model.simulate(density=cfg.density, traps=traps, xlim=cfg.xlim,
                             ylim=cfg.ylim, lam0=cfg.lam0, sigma=cfg.sigma,
                             K=cfg.K)
    else:
        sim = model.simulate(N=cfg.N, M=cfg.M, T=cfg.T, K=cfg.K, phi=cfg.phi,
                             lam0=cfg.lam0, sigma=cfg.sigma, traps=traps,
                             xlim=cfg.xlim, ylim=cfg.ylim)

    return sim

def simulate_scenario(cfg: Config, scenario: str, out_dir: str = 'sim_data'):
    """Simulate trial_count datasets for a given scenario."""

    scenario_dir = f'{out_dir}/{scenario}'
    os.makedirs(scenario_dir, exist_ok=True)

    logging.basicConfig(filename=f'{scenario_dir}/simulate.log',
                        level=logging.DEBUG)
    logging.info(f'Simulating {cfg.trial_count} trials for {scenario}')

    # one child seed per trial so that trials are reproducible on their own
    seeds = np.random.SeedSequence(cfg.seed).generate_state(cfg.trial_count)

    for trial in tqdm(range(cfg.trial_count)):

        sim = simulate_trial(cfg, seed=int(seeds[trial]))
        sim['seed'] = int(seeds[trial])

        path = f'{scenario_dir}/trial_{trial}.json'
        with open(path, 'w') as f:
            json.dump(sim, f, cls=NumpyEncoder)

        logging.debug(f'Wrote {path}')

    # save the settings as well (perhaps redundant with config)
    path = f'{scenario_dir}/settings.json'
    with open(path, 'w') as f:
        json.dump(dict(cfg), f, cls=NumpyEncoder)

    logging.info('scenario complete.')

def load_trial(path: str) -> dict:
    '''Read a simulated trial, converting lists back to arrays.'''
    with open(path, 'r') as f:
        trial = json.load(f)

    for key, val in trial.items():
        if isinstance(val, list) and key not in ('xlim', 'ylim'):
            trial[key] = np.asarray(val)

    return trial

if __name__ == '__main__':
    main()
