"""Run MCMC for every simulated trial in a scenario.

Each trial from sim_data/<scenario> is packed with data augmentation,
compiled into a PyMC model, and sampled. PyMC assigns NUTS to the
continuous nodes and a binary Gibbs Metropolis step to the alive and
inclusion indicators. Each trial's InferenceData is saved to
results/<scenario>/trial_<i>.json. Trials with saved results are skipped.

The script is called from the command line with the following arguments:
    -s: scenario name (default: closed)

Typical usage example:
    $ python -m scr.estimate --scenario open
"""

import argparse
import os
import logging
import time

import pymc as pm

from scr.augment import pack_closed, pack_open
from scr.config import load_config, sample_kwargs, Config
from scr.model import get_model
from scr.simulate import load_trial

def parse():
    '''Parse arguments from the command line.'''
    parser = argparse.ArgumentParser(description="Estimating SCR models")
    parser.add_argument('-s', "--scenario", default="closed")
    parser.add_argument('-c', "--config_dir", default="config")
    parser.add_argument('-d', "--data_dir", default="sim_data")
    parser.add_argument('-r', "--results_dir", default="results")
    return parser.parse_args()

def main():
    '''Estimate all the trials under a given scenario.'''
    args = parse()

    config_path = f'{args.config_dir}/{args.scenario}.yaml'
    cfg = load_config(config_path, f'{args.config_dir}/default.yaml')

    scenario = Scenario(args.scenario, cfg, data_dir=args.data_dir,
                        results_dir=args.results_dir)
    scenario.estimate()

class Scenario:
    '''Convenience class for estimating parameters for every trial.

    Attributes:
        name: string naming the scenario
        cfg: Config for the scenario
        data_dir: path to the directory with the simulated data
        results_dir: path to the sampling output
    '''
    def __init__(self, name: str, cfg: Config, data_dir: str = 'sim_data',
                 results_dir: str = 'results') -> None:
        self.name = name
        self.cfg = cfg
        self.data_dir = f'{data_dir}/{name}'
        self.results_dir = f'{results_dir}/{name}'

    def estimate(self):
        '''Use PyMC to estimate parameters for every remaining trial.'''
        os.makedirs(self.results_dir, exist_ok=True)
        logging.basicConfig(filename=f'{self.results_dir}/estimate.log',
                            level=logging.INFO)
        logging.info(f'Estimating {self.name}...')

        # check to see theres a json file for each trial in trial_count
        trial_count = self.cfg.trial_count
        files = [f'{self.data_dir}/trial_{t}.json' for t in range(trial_count)]
        if not all(os.path.isfile(f) for f in files):
            e = f'{self.data_dir} missing data for each trial in {trial_count}'
            raise OSError(e)

        remaining_trials = self.remaining_trials()
        if not remaining_trials:
            logging.info(f'All trials for {self.name} already completed.')
            return None

        logging.info(f'Remaining trials for {self.name} are {remaining_trials}')
        logging.info(f'Sample kwargs:\n{sample_kwargs(self.cfg)}')

        for trial in remaining_trials:
            self.run_trial(trial)

    def remaining_trials(self) -> list:
        '''Trials without a saved result.'''
        completed_paths = [i for i in os.listdir(self.results_dir)
                           if i.startswith('trial_') and i.endswith('.json')]
        completed_trials = [extract_trial_number(p) for p in completed_paths]

        return [t for t in range(self.cfg.trial_count)
                if t not in completed_trials]

    def run_trial(self, trial: int):
        '''Use PyMC to estimate parameters for the trial.'''
        logging.info(f'Sampling for trial {trial} of {self.name}...')
        start = time.time()

        sim = load_trial(f'{self.data_dir}/trial_{trial}.json')
        idata = sample_model(self.cfg, sim, seed=sim.get('seed'))

        path = f'{self.results_dir}/trial_{trial}.json'
        idata.to_json(path)

        duration = time.time() - start
        logging.info(f'Trial {trial} lasted {duration:.1f} seconds')

        return idata

def pack(cfg: Config, sim: dict, seed: int = None) -> dict:
    '''Constants, data, and inits for the scenario's model.'''
    if cfg.model == 'closed':
        return pack_closed(sim, M=cfg.M, seed=seed)
    elif cfg.model == 'open':
        return pack_open(sim, M=cfg.M, seed=seed)
    raise ValueError(f'model must be "closed" or "open", got {cfg.model!r}')

def sample_model(cfg: Config, sim: dict, seed: int = None):
    '''Wrapper for packing, compiling, and sampling a model.'''
    model = get_model(cfg.model, sigma_max=cfg.sigma_max,
                      lam0_max=cfg.lam0_max)
    packed = pack(cfg, sim, seed=seed)
    pymc_model = model.compile_pymc_model(**packed)

    with pymc_model:
        idata = pm.sample(random_seed=seed, **sample_kwargs(cfg))

    return idata

def extract_trial_number(path):
    """Extracts trial integer from 'results/closed/trial_17.json'"""
    number_extension = path.split('trial_')[1]
    number = int(number_extension.split('.')[0])
    return number

if __name__ == '__main__':
    main()
