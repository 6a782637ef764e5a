import numpy as np
import pymc as pm
import arviz as az
import pytest

from scr.analyze import sample_matrix
from scr.augment import pack_open
from scr.model import OpenSCR, PopulationState, transition
from scr.traps import trap_grid

debug_kwargs = {
    'N': 40,
    'M': 150,
    'T': 5,
    'K': 3,
    'phi': 0.75,
    'lam0': 0.5,
    'sigma': 0.5,
    'traps': trap_grid((0, 6), (0, 6), count=5, buffer=1),
    'xlim': (0, 6),
    'ylim': (0, 6)
}

def ever_alive_before(z):
    """M by T indicator of being alive at any step before t."""
    ever = np.maximum.accumulate(z, axis=1)
    return np.insert(ever[:, :-1], 0, 0, axis=1)

class TestTransition:

    rng = np.random.default_rng(42)

    def test_first_step(self):
        state = PopulationState.empty(150)
        new_state, record = transition(state, phi=0.75, N=40, rng=self.rng)

        assert record.gamma == 40 / 150
        assert record.eligible_count == 150
        assert not record.survived.any()
        assert np.array_equal(new_state.alive, record.recruited)
        assert np.array_equal(new_state.ever_alive, new_state.alive)

    def test_nobody_eligible(self):
        M = 10
        state = PopulationState(np.zeros(M, dtype=int), np.ones(M, dtype=int))
        new_state, record = transition(state, phi=0.5, N=5, rng=self.rng)

        assert record.eligible_count == 0
        assert record.gamma == 0
        assert not record.recruited.any()
        assert not new_state.alive.any()

    def test_survivors_exceed_target(self):
        M = 10
        alive = np.r_[np.ones(8, dtype=int), np.zeros(M - 8, dtype=int)]
        state = PopulationState(alive, alive.copy())

        new_state, record = transition(state, phi=1., N=3, rng=self.rng)

        assert record.survived.sum() == 8
        assert record.gamma == 0
        assert not record.recruited.any()
        assert new_state.alive.sum() == 8

    def test_gamma_capped_at_one(self):
        state = PopulationState.empty(10)
        _, record = transition(state, phi=0.5, N=20, rng=self.rng)

        assert record.gamma == 1
        assert record.recruited.sum() == 10

    def test_dead_stay_dead(self):
        M = 4
        state = PopulationState(np.zeros(M, dtype=int), np.ones(M, dtype=int))
        for _ in range(5):
            state, record = transition(state, phi=0.9, N=4, rng=self.rng)
            assert not state.alive.any()

class TestSimulator:

    seed = 42
    openscr = OpenSCR(seed=seed)
    sim = openscr.simulate(**debug_kwargs)

    def test_shapes(self):
        n = len(self.sim['detected'])
        assert self.sim['y'].shape == (5, n, 25)
        assert self.sim['y_full'].shape == (5, 150, 25)
        assert self.sim['z'].shape == (150, 5)
        assert self.sim['centers'].shape == (150, 2)
        assert self.sim['gamma'].shape == (5,)

    def test_alive_is_survived_or_recruited(self):
        z = self.sim['z']
        survived = self.sim['survived']
        recruited = self.sim['recruited']

        assert np.array_equal(z, np.maximum(survived, recruited))
        assert not (survived & recruited).any()

    def test_recruits_were_never_alive(self):
        recruited = self.sim['recruited'].astype(bool)
        before = ever_alive_before(self.sim['z'])
        assert not before[recruited].any()

    def test_survivors_were_alive(self):
        survived = self.sim['survived'][:, 1:].astype(bool)
        previous = self.sim['z'][:, :-1]
        assert previous[survived].all()
        assert not self.sim['survived'][:, 0].any()

    def test_gamma_in_unit_interval(self):
        gamma = self.sim['gamma']
        assert ((gamma >= 0) & (gamma <= 1)).all()
        assert gamma[0] == 40 / 150

    def test_derived_counts(self):
        assert np.array_equal(self.sim['N'], self.sim['z'].sum(axis=0))
        assert np.array_equal(self.sim['R'], self.sim['recruited'].sum(axis=0))

    def test_detections(self):
        y = self.sim['y']
        y_full = self.sim['y_full']
        detected = self.sim['detected']

        assert y.max() <= 3
        assert y.sum(axis=(0, 2)).min() > 0
        assert np.array_equal(y, y_full[:, detected])

        # undetected animals are dropped, not alive animals are never seen
        undetected = np.setdiff1d(np.arange(150), detected)
        assert not y_full[:, undetected].any()
        assert not y_full[self.sim['z'].T == 0].any()

    def test_same_seed_same_data(self):
        sim = OpenSCR(seed=self.seed).simulate(**debug_kwargs)
        assert np.array_equal(sim['y'], self.sim['y'])
        assert np.array_equal(sim['z'], self.sim['z'])

    def test_population_tracks_target(self):
        sizes = [OpenSCR(seed=s).simulate_z(N=40, M=150, T=5, phi=0.75)['N']
                 for s in range(200)]
        mean_sizes = np.mean(sizes, axis=0)
        assert np.allclose(mean_sizes, 40, atol=2)

    def test_m_smaller_than_n(self):
        kwargs = {**debug_kwargs, 'M': 30}
        with pytest.raises(ValueError):
            OpenSCR().simulate(**kwargs)

def simulate_small(seed=8):
    traps = trap_grid((0, 4), (0, 4), count=3, buffer=1)
    sim = OpenSCR(seed=seed).simulate(N=10, M=30, T=3, K=2, phi=0.7, lam0=0.8,
                                      sigma=0.6, traps=traps, xlim=(0, 4),
                                      ylim=(0, 4))
    return sim

class TestModel:

    openscr = OpenSCR(sigma_max=5, lam0_max=5)
    sim = simulate_small()
    packed = pack_open(sim, M=30, seed=1)
    model = openscr.compile_pymc_model(**packed)

    def test_graph_matches_model(self):
        graph = self.openscr.graph(**self.packed['constants'])

        free = {rv.name for rv in self.model.free_RVs}
        observed = {rv.name for rv in self.model.observed_RVs}

        assert free == set(graph.latent_nodes())
        assert free >= {'z_0', 'z_1', 'z_2', 'gamma', 'phi'}
        assert observed == {'y'}
        assert set(graph.model_variables()) <= set(self.model.named_vars)

    def test_graph_dependencies(self):
        graph = self.openscr.graph(**self.packed['constants'])
        assert graph.parents('z_2') == ('phi', 'gamma', 'z_0', 'z_1')
        assert set(graph.children('p')) == {'y'}

    def test_initial_point_is_finite(self):
        point = self.model.initial_point()
        logp = self.model.compile_logp()(point)
        assert np.isfinite(logp)

    def test_derived_at_initial_point(self):
        point = self.model.initial_point()
        N, R = self.model.compile_fn(
            [self.model['N'], self.model['R']], inputs=self.model.value_vars,
            on_unused_input='ignore'
        )(point)

        ntot = self.sim['y'].shape[1]
        assert np.array_equal(N, [ntot] * 3)
        assert np.array_equal(R, [ntot, 0, 0])

    def test_sample(self):
        with self.model:
            idata = pm.sample(draws=20, tune=20, chains=1, cores=1,
                              random_seed=2, progressbar=False)

        matrix = sample_matrix(idata, self.openscr.monitors)
        assert len(matrix) == 20

        # recruits are a subset of the animals alive at that step
        for t in range(3):
            assert (matrix[f'R[{t}]'] <= matrix[f'N[{t}]']).all()
            assert (matrix[f'N[{t}]'] <= 30).all()
        assert ((matrix['phi'] > 0) & (matrix['phi'] < 1)).all()

class TestCheck:

    def test_check(self):
        traps = np.array([[0., 0.], [1., 0.]])
        y = np.array([[[1, 0], [0, 0]], [[0, 2], [0, 0]]])
        draws = 40

        posterior = {
            'sigma': np.full((1, draws), 0.5),
            'lam0': np.full((1, draws), 1.),
            'sx': np.tile([0.5, 0.5], (1, draws, 1)),
            'sy': np.tile([0., 0.], (1, draws, 1)),
            'z_0': np.tile([1, 0], (1, draws, 1)),
            'z_1': np.tile([1, 0], (1, draws, 1)),
        }
        idata = az.from_dict(posterior=posterior)
        data = {'y': y, 'K': 2, 'trapxy': traps}

        results = OpenSCR().check(idata, data, seed=3)

        assert results['freeman_tukey_observed'].shape == (draws,)
        assert np.allclose(results['freeman_tukey_observed'],
                           results['freeman_tukey_observed'][0])
        assert (results['freeman_tukey_new'] >= 0).all()
