"""Module for summarizing the output of the simulation.

Turns the InferenceData for each trial into an ArviZ summary, joins it to
the true values from the simulation, and adds the number of divergent
transitions and a posterior predictive p-value.

Typical usage example:
    $ python -m scr.analyze --scenario closed
"""

import argparse
import logging

import numpy as np
import arviz as az
import pandas as pd

from scr.config import load_config, Config
from scr.estimate import pack
from scr.model import get_model
from scr.simulate import load_trial

def parse():
    '''Parse command line arguments.'''
    parser = argparse.ArgumentParser(description="Analyzing results")
    parser.add_argument('-s', "--scenario", default="closed")
    parser.add_argument('-c', "--config_dir", default="config")
    parser.add_argument('-d', "--data_dir", default="sim_data")
    parser.add_argument('-r', "--results_dir", default="results")
    return parser.parse_args()

def analyze_scenario():
    '''Summarize the results of every trial in a scenario.'''
    args = parse()

    config_path = f'{args.config_dir}/{args.scenario}.yaml'
    cfg = load_config(config_path, f'{args.config_dir}/default.yaml')

    results_dir = f'{args.results_dir}/{args.scenario}'
    data_dir = f'{args.data_dir}/{args.scenario}'
    logging.basicConfig(filename=f'{results_dir}/analyze.log',
                        level=logging.INFO)

    trial_list = []
    for trial in range(cfg.trial_count):
        logging.info(f'Summarizing trial {trial} for {args.scenario}')

        idata = az.from_json(f'{results_dir}/trial_{trial}.json')
        sim = load_trial(f'{data_dir}/trial_{trial}.json')

        trial_list.append(analyze_trial(cfg, idata, sim, trial))

    scenario_results = pd.concat(trial_list)
    scenario_results['scenario'] = args.scenario

    out_path = f'{results_dir}/{args.scenario}-summary.csv'
    scenario_results.to_csv(out_path, index=False)
    logging.info(f'Wrote {out_path}')

def analyze_trial(cfg: Config, idata: az.InferenceData, sim: dict,
                  trial: int) -> pd.DataFrame:
    '''Summary of one trial with truth, divergences, and p-value.'''
    model = get_model(cfg.model)

    summary = summarize(idata, model.monitors)
    summary = summary.merge(get_truth(cfg, sim), how='left')

    # posterior predictive check needs the data the model actually saw
    packed = pack(cfg, sim)
    check_results = model.check(idata, packed['data'], seed=cfg.seed)

    ft_obs = check_results['freeman_tukey_observed']
    ft_new = check_results['freeman_tukey_new']
    summary['p_val'] = (ft_new > ft_obs).mean()

    summary['trial'] = trial

    return summary

def summarize(idata: az.InferenceData, var_names: list) -> pd.DataFrame:
    '''ArviZ summary (mean, sd, hdi, ess, r_hat) with a parameter column.'''
    summary = az.summary(idata, var_names=var_names)
    summary = summary.reset_index(names='parameter')

    # report number of divergent transitions
    if hasattr(idata, 'sample_stats') and 'diverging' in idata.sample_stats:
        summary['divergences'] = idata.sample_stats.diverging.to_numpy().sum()

    return summary

def sample_matrix(idata: az.InferenceData, var_names: list) -> pd.DataFrame:
    '''Iterations by monitored variable matrix of posterior draws.

    Chains are stacked one after the other. Vector valued variables are
    flattened into one column per element, named like 'N[0]'.
    '''
    stacked = az.extract(idata, var_names=var_names, keep_dataset=True)

    columns = {}
    for name in var_names:
        values = stacked[name].values

        # move the sample dimension to the front
        values = np.moveaxis(values, -1, 0)
        if values.ndim == 1:
            columns[name] = values
            continue

        flat = values.reshape(values.shape[0], -1)
        for idx in range(flat.shape[1]):
            columns[f'{name}[{idx}]'] = flat[:, idx]

    return pd.DataFrame(columns)

def get_truth(cfg: Config, sim: dict) -> pd.DataFrame:
    """Returns a dataframe with true values for the simulated trial.

    Detection and survival parameters come from the config, the population
    sizes and recruitment come from the simulated latent state.
    """
    truth = {'sigma': cfg.sigma, 'lam0': cfg.lam0}
    if cfg.model == 'closed':
        truth['N'] = int(sim['N'])
    else:
        truth['phi'] = cfg.phi
        for name in ('N', 'R', 'gamma'):
            for t, val in enumerate(np.asarray(sim[name])):
                truth[f'{name}[{t}]'] = val

    return pd.DataFrame({'parameter': list(truth),
                         'truth': list(truth.values())})

if __name__ == '__main__':
    analyze_scenario()
