"""Simulating data and specifying Bayesian spatial capture-recapture models.

Two models live here. ClosedSCR is a closed population whose only data are
the total detections at each trap on each occasion. OpenSCR is a
Jolly-Seber style model where animals enter (are recruited) and die
across primary steps while keeping a fixed activity center. Each class
simulates data, declares its model as a ModelGraph, compiles that graph into
PyMC, and runs a posterior predictive check on the result.

In the open simulation, recruitment at each step is whatever brings the
expected number alive back to the target N. The model structure follows
Royle et al. (2013), Spatial Capture-Recapture.

Typical usage example:

    traps = trap_grid((0, 100), (0, 100), count=10, buffer=5)
    closed = ClosedSCR(seed=17)
    sim = closed.simulate(density=0.005, traps=traps, xlim=(0, 100),
                          ylim=(0, 100), lam0=0.4, sigma=5, K=5)

    packed = pack_closed(sim, M=200)
    model = closed.compile_pymc_model(**packed)
    with model:
        idata = pm.sample()
"""

from typing import NamedTuple

import logging

import numpy as np
import pymc as pm
import arviz as az
from pytensor import tensor as pt

from scr.graph import ModelGraph, Node
from scr.utils import squared_distance, half_normal, cloglog_detection
from scr.utils import freeman_tukey

# keeps log(p) finite when an activity center is far from every trap
EPSILON = 1e-10

class ClosedSCR:
    """Closed population SCR with trap by occasion totals as data.

    Attributes:
        rng: np.random.Generator used for simulation
        sigma_max: upper bound of the uniform prior on sigma
        lam0_max: upper bound of the uniform prior on lam0
    """

    monitors = ['sigma', 'lam0', 'psi', 'N']

    def __init__(self, seed: int = None, sigma_max: float = 50.,
                 lam0_max: float = 5.) -> None:
        self.rng = np.random.default_rng(seed)
        self.sigma_max = sigma_max
        self.lam0_max = lam0_max

    def simulate(self, density: float, traps: np.ndarray, xlim, ylim,
                 lam0: float, sigma: float, K: int) -> dict:
        '''Simulate a closed population and its detections.

        Args:
            density: expected number of animals per unit area
            traps: J by 2 trap coordinates
            xlim, ylim: bounds of the state space
            lam0: baseline encounter rate at distance zero
            sigma: spatial decay of the encounter rate
            K: number of sampling occasions

        Returns:
            dict with the true N, activity centers, the per animal counts y
            (N, J, K) and the observed trap by occasion totals n (J, K)
        '''
        traps = np.asarray(traps, dtype=float)
        area = (xlim[1] - xlim[0]) * (ylim[1] - ylim[0])

        N = self.rng.poisson(density * area)
        centers = self.simulate_centers(N, xlim, ylim)

        # encounter rate for each animal and trap, N by J
        rate = half_normal(squared_distance(centers, traps), lam0, sigma)
        y = self.simulate_counts(rate, K)

        # animals are not identified, only the totals are observed
        n = y.sum(axis=0)

        logging.debug(f'Simulated closed population of {N} with {n.sum()} detections')

        return {'N': N, 'centers': centers, 'y': y, 'n': n, 'traps': traps,
                'xlim': tuple(xlim), 'ylim': tuple(ylim), 'K': K}

    def simulate_centers(self, N: int, xlim, ylim) -> np.ndarray:
        """Uniform activity centers in the state space."""
        sx = self.rng.uniform(xlim[0], xlim[1], N)
        sy = self.rng.uniform(ylim[0], ylim[1], N)
        return np.column_stack([sx, sy])

    def simulate_counts(self, rate: np.ndarray, K: int) -> np.ndarray:
        """Poisson counts for every animal, trap, and occasion."""
        return self.rng.poisson(rate[..., None], size=rate.shape + (K,))

    def graph(self, M: int, J: int, K: int) -> ModelGraph:
        '''Declare the closed model as a graph of named nodes.'''
        g = ModelGraph('closed_scr')

        g.add(Node('trapxy', 'constant', shape=('J', '2')))
        g.add(Node('xlim', 'constant'))
        g.add(Node('ylim', 'constant'))

        g.add(Node('sigma', 'stochastic', f'Uniform(0, {self.sigma_max})'))
        g.add(Node('lam0', 'stochastic', f'Uniform(0, {self.lam0_max})'))
        g.add(Node('psi', 'stochastic', 'Uniform(0, 1)'))

        g.add(Node('z', 'stochastic', 'Bernoulli(psi)', ('psi',), ('M',)))
        g.add(Node('sx', 'stochastic', 'Uniform(xlim)', ('xlim',), ('M',)))
        g.add(Node('sy', 'stochastic', 'Uniform(ylim)', ('ylim',), ('M',)))

        g.add(Node(
            'lam', 'deterministic',
            'sum_i z[i] * lam0 * exp(-d[i, j]^2 / (2 * sigma^2))',
            ('z', 'lam0', 'sigma', 'sx', 'sy', 'trapxy'), ('J',)
        ))
        g.add(Node('n', 'stochastic', 'Poisson(lam[j])', ('lam',), ('J', 'K'),
                   observed=True))
        g.add(Node('N', 'deterministic', 'sum(z)', ('z',)))

        logging.debug(f'closed graph with M={M}, J={J}, K={K}')

        return g

    def compile_pymc_model(self, constants: dict, data: dict,
                           inits: dict) -> pm.Model:
        '''Generate the closed SCR model in PyMC.

        The expected total at each trap sums every augmented animal's
        contribution, so the likelihood is Poisson in the totals rather than
        in individual histories.

        Args:
            constants: dimensions M, J, K
            data: observed totals n, trap coordinates, and the bounds
            inits: initial value for every latent node
        '''
        graph = self.graph(**constants)
        graph.check_inputs(data, inits)
        logging.debug(f'Compiling {graph.name}:\n{graph.describe()}')

        M = constants['M']
        trapxy = np.asarray(data['trapxy'], dtype=float)
        xlim, ylim = data['xlim'], data['ylim']

        with pm.Model() as closed:
            # priors for detection and inclusion
            sigma = pm.Uniform('sigma', 0., self.sigma_max,
                               initval=inits['sigma'])
            lam0 = pm.Uniform('lam0', 0., self.lam0_max, initval=inits['lam0'])
            psi = pm.Uniform('psi', 0., 1., initval=inits['psi'])

            # inclusion and activity center for each augmented animal
            z = pm.Bernoulli('z', psi, shape=M, initval=inits['z'])
            sx = pm.Uniform('sx', xlim[0], xlim[1], shape=M,
                            initval=inits['sx'])
            sy = pm.Uniform('sy', ylim[0], ylim[1], shape=M,
                            initval=inits['sy'])

            # squared distance between activity centers and traps, M by J
            sq_dist = ((sx[:, None] - trapxy[None, :, 0]) ** 2 +
                       (sy[:, None] - trapxy[None, :, 1]) ** 2)

            # expected total at each trap, summed over included animals
            lam_ij = z[:, None] * lam0 * pt.exp(-sq_dist / (2 * sigma ** 2))
            lam = pm.Deterministic('lam', lam_ij.sum(axis=0))

            pm.Poisson('n', mu=lam[:, None], observed=data['n'])

            pm.Deterministic('N', z.sum())

        return closed

    def check(self, idata: az.InferenceData, data: dict,
              seed: int = None) -> dict:
        '''Posterior predictive check for the trap by occasion totals.

        The test statistic is the Freeman-Tukey discrepancy between the
        observed (or replicated) totals and their expected values.

        Args:
            idata: inference data object from PyMC sampling
            data: data mapping with the observed totals n
        '''
        n = np.asarray(data['n'])
        occasion_count = n.shape[1]

        stacked = az.extract(idata)
        lam_samples = stacked.lam.values

        rng = np.random.default_rng(seed=seed)

        freeman_tukey_observed = []
        freeman_tukey_new = []

        for i in range(lam_samples.shape[-1]):

            # every occasion has the same expected total
            expected = np.repeat(lam_samples[:, i, None], occasion_count, axis=1)

            D_obs = freeman_tukey(n, expected)
            freeman_tukey_observed.append(D_obs)

            n_new = rng.poisson(expected)
            D_new = freeman_tukey(n_new, expected)
            freeman_tukey_new.append(D_new)

        return {'freeman_tukey_observed': np.array(freeman_tukey_observed),
                'freeman_tukey_new': np.array(freeman_tukey_new)}

class PopulationState(NamedTuple):
    """Latent state of the augmented population between steps.

    Attributes:
        alive: length M indicator that the animal is alive now
        ever_alive: length M indicator that the animal has been alive at
          this or any earlier step
    """
    alive: np.ndarray
    ever_alive: np.ndarray

    @classmethod
    def empty(cls, M: int) -> 'PopulationState':
        """State before the first step, nobody has entered."""
        return cls(np.zeros(M, dtype=int), np.zeros(M, dtype=int))

class StepRecord(NamedTuple):
    """What happened during a single step of the population process."""
    survived: np.ndarray
    recruited: np.ndarray
    alive: np.ndarray
    gamma: float
    eligible_count: int

def transition(state: PopulationState, phi: float, N: int,
               rng: np.random.Generator):
    """Advance the population by one step.

    Survivors are drawn first. Then every animal that has never been alive
    is recruited with probability gamma, chosen so that the expected number
    alive equals N. gamma is clipped to [0, 1]: when survivors already meet
    N nobody is recruited.

    Args:
        state: population state at the end of the previous step
        phi: survival probability between steps
        N: target number alive at each step
        rng: np.random.Generator

    Returns:
        tuple of the new PopulationState and the StepRecord for this step
    """
    survived = rng.binomial(1, state.alive * phi)

    # only animals that have never been alive can be recruited
    eligible = state.ever_alive == 0
    eligible_count = int(eligible.sum())

    if eligible_count == 0:
        gamma = 0.
    else:
        gamma = float(np.clip((N - survived.sum()) / eligible_count, 0., 1.))

    recruited = rng.binomial(1, gamma * eligible)
    alive = np.maximum(survived, recruited)

    new_state = PopulationState(alive, np.maximum(state.ever_alive, alive))
    record = StepRecord(survived, recruited, alive, gamma, eligible_count)

    return new_state, record

class OpenSCR:
    """Open population (Jolly-Seber) SCR with binomial encounters per step.

    Attributes:
        rng: np.random.Generator used for simulation
        sigma_max: upper bound of the uniform prior on sigma
        lam0_max: upper bound of the uniform prior on lam0
    """

    monitors = ['sigma', 'lam0', 'phi', 'gamma', 'N', 'R']

    def __init__(self, seed: int = None, sigma_max: float = 5.,
                 lam0_max: float = 5.) -> None:
        self.rng = np.random.default_rng(seed)
        self.sigma_max = sigma_max
        self.lam0_max = lam0_max

    def simulate(self, N: int, M: int, T: int, K: int, phi: float,
                 lam0: float, sigma: float, traps: np.ndarray, xlim,
                 ylim) -> dict:
        '''Simulate an open population and its encounter histories.

        Args:
            N: target number alive at each step
            M: number of animals that could ever exist
            T: number of primary steps
            K: number of occasions within each step
            phi: survival probability between steps
            lam0: baseline encounter rate
            sigma: spatial decay of the encounter rate
            traps: J by 2 trap coordinates
            xlim, ylim: bounds of the state space

        Returns:
            dict with the observed y (T, n, J) for detected animals, the
            full y_full (T, M, J), latent z (M, T) and its components,
            per step gamma, N and R, and the activity centers
        '''
        if M < N:
            raise ValueError(f'M={M} must be at least N={N}')
        if T < 1 or K < 1:
            raise ValueError(f'T={T} and K={K} must be positive')

        traps = np.asarray(traps, dtype=float)

        # activity centers stay put for the whole study
        centers = self.simulate_centers(M, xlim, ylim)

        states = self.simulate_z(N=N, M=M, T=T, phi=phi)
        z = states['z']

        # single occasion detection probability, M by J
        rate = half_normal(squared_distance(centers, traps), lam0, sigma)
        p = cloglog_detection(rate)

        y_full = self.simulate_capture(z, p, K)

        # animals never detected are invisible to the observer
        detected = np.flatnonzero(y_full.sum(axis=(0, 2)) > 0)
        y = y_full[:, detected]

        logging.debug(f'Detected {len(detected)} of {states["z"].any(axis=1).sum()} '
                      'animals that were ever alive')

        return {'y': y, 'y_full': y_full, 'detected': detected,
                'centers': centers, 'traps': traps, 'xlim': tuple(xlim),
                'ylim': tuple(ylim), 'K': K, **states}

    def simulate_centers(self, M: int, xlim, ylim) -> np.ndarray:
        """Uniform activity centers in the state space."""
        sx = self.rng.uniform(xlim[0], xlim[1], M)
        sy = self.rng.uniform(ylim[0], ylim[1], M)
        return np.column_stack([sx, sy])

    def simulate_z(self, N: int, M: int, T: int, phi: float) -> dict:
        """Run the population process for T steps from an empty state.

        Returns:
            dict of M by T matrices z, survived, recruited and length T
            vectors gamma, N (number alive), and R (number recruited)
        """
        state = PopulationState.empty(M)
        records = []
        for _ in range(T):
            state, record = transition(state, phi, N, self.rng)
            records.append(record)

        z = np.column_stack([r.alive for r in records])
        survived = np.column_stack([r.survived for r in records])
        recruited = np.column_stack([r.recruited for r in records])
        gamma = np.array([r.gamma for r in records])

        return {'z': z, 'survived': survived, 'recruited': recruited,
                'gamma': gamma, 'N': z.sum(axis=0),
                'R': recruited.sum(axis=0)}

    def simulate_capture(self, z: np.ndarray, p: np.ndarray,
                         K: int) -> np.ndarray:
        """Encounters per step, summed over K Bernoulli occasions.

        Args:
            z: M by T alive states
            p: M by J single occasion detection probabilities
            K: number of occasions within each step

        Returns:
            T by M by J counts between 0 and K
        """
        T = z.shape[1]
        occasions = self.rng.binomial(1, p, size=(T, K) + p.shape)

        # only animals alive at step t are available for capture
        available = z.T[:, None, :, None]

        return (occasions * available).sum(axis=1)

    def graph(self, M: int, J: int, T: int) -> ModelGraph:
        '''Declare the open model as a graph of named nodes.'''
        g = ModelGraph('open_scr')

        g.add(Node('trapxy', 'constant', shape=('J', '2')))
        g.add(Node('xlim', 'constant'))
        g.add(Node('ylim', 'constant'))
        g.add(Node('K', 'constant'))

        g.add(Node('sigma', 'stochastic', f'Uniform(0, {self.sigma_max})'))
        g.add(Node('lam0', 'stochastic', f'Uniform(0, {self.lam0_max})'))
        g.add(Node('phi', 'stochastic', 'Uniform(0, 1)'))
        g.add(Node('gamma', 'stochastic', 'Uniform(0, 1)', shape=('T',)))

        g.add(Node('sx', 'stochastic', 'Uniform(xlim)', ('xlim',), ('M',)))
        g.add(Node('sy', 'stochastic', 'Uniform(ylim)', ('ylim',), ('M',)))

        z_names = [f'z_{t}' for t in range(T)]
        g.add(Node('z_0', 'stochastic', 'Bernoulli(gamma[0])', ('gamma',),
                   ('M',)))
        for t in range(1, T):
            g.add(Node(
                z_names[t], 'stochastic',
                f'Bernoulli(phi * z_{t - 1} + gamma[{t}] * prod_s<{t}(1 - z_s))',
                ('phi', 'gamma', *z_names[:t]), ('M',)
            ))

        g.add(Node(
            'p', 'deterministic',
            '1 - exp(-lam0 * exp(-d[i, j]^2 / (2 * sigma^2)))',
            ('lam0', 'sigma', 'sx', 'sy', 'trapxy'), ('M', 'J')
        ))
        g.add(Node('y', 'stochastic', 'Binomial(K, z_t[i] * p[i, j])',
                   ('K', 'p', *z_names), ('T', 'M', 'J'), observed=True))

        g.add(Node('N', 'deterministic', 'sum_i z_t[i]', tuple(z_names),
                   ('T',)))
        g.add(Node('R', 'deterministic',
                   'sum_i z_t[i] * prod_s<t(1 - z_s[i])', tuple(z_names),
                   ('T',)))

        logging.debug(f'open graph with M={M}, J={J}, T={T}')

        return g

    def compile_pymc_model(self, constants: dict, data: dict,
                           inits: dict) -> pm.Model:
        '''Generate the open SCR model in PyMC.

        The alive state is a first order Markov chain: an animal alive at
        t - 1 survives with probability phi, and an animal that has never
        been alive enters with probability gamma[t].

        Args:
            constants: dimensions M, J, T
            data: augmented y (T, M, J), K, trap coordinates, and bounds
            inits: initial value for every latent node
        '''
        graph = self.graph(**constants)
        graph.check_inputs(data, inits)
        logging.debug(f'Compiling {graph.name}:\n{graph.describe()}')

        M = constants['M']
        T = constants['T']
        K = data['K']
        trapxy = np.asarray(data['trapxy'], dtype=float)
        xlim, ylim = data['xlim'], data['ylim']

        with pm.Model() as open_scr:
            # priors for detection, survival, and recruitment
            sigma = pm.Uniform('sigma', 0., self.sigma_max,
                               initval=inits['sigma'])
            lam0 = pm.Uniform('lam0', 0., self.lam0_max, initval=inits['lam0'])
            phi = pm.Uniform('phi', 0., 1., initval=inits['phi'])
            gamma = pm.Uniform('gamma', 0., 1., shape=T,
                               initval=inits['gamma'])

            sx = pm.Uniform('sx', xlim[0], xlim[1], shape=M,
                            initval=inits['sx'])
            sy = pm.Uniform('sy', ylim[0], ylim[1], shape=M,
                            initval=inits['sy'])

            # squared distance between activity centers and traps, M by J
            sq_dist = ((sx[:, None] - trapxy[None, :, 0]) ** 2 +
                       (sy[:, None] - trapxy[None, :, 1]) ** 2)

            # cloglog detection probability for a single occasion
            lam = lam0 * pt.exp(-sq_dist / (2 * sigma ** 2))
            p = pm.Deterministic(
                'p', pt.clip(1 - pt.exp(-lam), EPSILON, 1 - EPSILON)
            )

            # one while the animal has never been alive
            not_entered = pt.ones(M)

            z_steps = []
            recruits = []
            for t in range(T):

                if t == 0:
                    mu_z = gamma[0] * not_entered
                else:
                    mu_z = phi * z_steps[-1] + gamma[t] * not_entered

                z_t = pm.Bernoulli(f'z_{t}', p=mu_z, shape=M,
                                   initval=inits[f'z_{t}'])

                recruits.append((z_t * not_entered).sum())
                not_entered = not_entered * (1 - z_t)
                z_steps.append(z_t)

            # T by M alive states
            z = pt.stack(z_steps, axis=0)

            pm.Binomial('y', n=K, p=z[:, :, None] * p[None, :, :],
                        observed=data['y'])

            pm.Deterministic('N', z.sum(axis=1))
            pm.Deterministic('R', pt.stack(recruits))

        return open_scr

    def check(self, idata: az.InferenceData, data: dict,
              seed: int = None) -> dict:
        '''Posterior predictive check for the encounter counts.

        The test statistic is the Freeman-Tukey discrepancy between the
        observed (or replicated) counts and their expected values,
        K * z_t[i] * p[i, j].

        Args:
            idata: inference data object from PyMC sampling
            data: data mapping with augmented y, K, and trap coordinates
        '''
        y = np.asarray(data['y'])
        K = data['K']
        trapxy = np.asarray(data['trapxy'], dtype=float)
        step_count = y.shape[0]

        stacked = az.extract(idata)
        sigma_samples = stacked.sigma.values
        lam0_samples = stacked.lam0.values
        sx_samples = stacked.sx.values
        sy_samples = stacked.sy.values
        z_samples = np.stack(
            [stacked[f'z_{t}'].values for t in range(step_count)]
        )

        rng = np.random.default_rng(seed=seed)

        freeman_tukey_observed = []
        freeman_tukey_new = []

        for i in range(len(sigma_samples)):

            centers = np.column_stack([sx_samples[:, i], sy_samples[:, i]])
            rate = half_normal(squared_distance(centers, trapxy),
                               lam0_samples[i], sigma_samples[i])
            p = cloglog_detection(rate)

            # T by M by J probability of detection on a single occasion
            mu = z_samples[:, :, i][:, :, None] * p[None, :, :]
            expected = K * mu

            D_obs = freeman_tukey(y, expected)
            freeman_tukey_observed.append(D_obs)

            y_new = rng.binomial(K, mu)
            D_new = freeman_tukey(y_new, expected)
            freeman_tukey_new.append(D_new)

        return {'freeman_tukey_observed': np.array(freeman_tukey_observed),
                'freeman_tukey_new': np.array(freeman_tukey_new)}

MODELS = {'closed': ClosedSCR, 'open': OpenSCR}

def get_model(name: str, **kwargs):
    '''Look up a model class by name and instantiate it.'''
    try:
        model_class = MODELS[name]
    except KeyError:
        raise ValueError(f'model must be one of {list(MODELS)}, got {name!r}')
    return model_class(**kwargs)
