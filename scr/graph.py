"""Declarative description of a Bayesian model as a graph of named nodes.

Each model is written down once as a ModelGraph: the constants it needs, its
priors, latent states, deterministic quantities and observed likelihood
terms, with the parents of every node. The graph is what gets checked
against the data and initial values before a model is compiled for the
sampler, and the compiled PyMC model declares exactly the same names.

Typical usage example:

    graph = ModelGraph()
    graph.add(Node('psi', 'stochastic', 'Uniform(0, 1)'))
    graph.add(Node('z', 'stochastic', 'Bernoulli', parents=('psi',),
                   shape=('M',)))
    graph.check_inputs(data={}, inits={'psi': 0.5, 'z': z_init})
"""

from typing import NamedTuple, Optional

KINDS = ('constant', 'stochastic', 'deterministic')

class Node(NamedTuple):
    """A single node in the model graph.

    Attributes:
        name: unique name, shared with the compiled model variable
        kind: one of 'constant', 'stochastic', or 'deterministic'
        distribution: distribution or expression, for documentation
        parents: names of the nodes this node depends on
        shape: dimension names, e.g., ('M', 'J')
        observed: whether a stochastic node is fixed to data
    """
    name: str
    kind: str
    distribution: Optional[str] = None
    parents: tuple = ()
    shape: tuple = ()
    observed: bool = False

    @property
    def is_latent(self) -> bool:
        return self.kind == 'stochastic' and not self.observed

    @property
    def needs_data(self) -> bool:
        return self.kind == 'constant' or self.observed

class ModelGraph:
    """Ordered collection of nodes with dependency edges."""

    def __init__(self, name: str = 'model') -> None:
        self.name = name
        self._nodes = {}

    def add(self, node: Node) -> Node:
        if node.kind not in KINDS:
            raise ValueError(f'Unknown node kind {node.kind!r} for {node.name}')
        if node.name in self._nodes:
            raise ValueError(f'Node {node.name} is already in {self.name}')
        if node.observed and node.kind != 'stochastic':
            raise ValueError(f'Only stochastic nodes can be observed: {node.name}')
        self._nodes[node.name] = node
        return node

    def __getitem__(self, name: str) -> Node:
        return self._nodes[name]

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __iter__(self):
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def parents(self, name: str) -> tuple:
        return self._nodes[name].parents

    def children(self, name: str) -> list:
        return [n.name for n in self if name in n.parents]

    def validate(self) -> None:
        """Raise if a node refers to an unknown parent or the graph cycles."""
        for node in self:
            missing = [p for p in node.parents if p not in self._nodes]
            if missing:
                raise ValueError(f'{node.name} has unknown parents: {missing}')
        self.topological_order()

    def topological_order(self) -> list:
        """Node names ordered so that parents come before their children."""
        order = []
        state = {}

        def visit(name, path):
            if state.get(name) == 'done':
                return
            if state.get(name) == 'visiting':
                cycle = ' -> '.join(path + [name])
                raise ValueError(f'Cycle in {self.name}: {cycle}')
            state[name] = 'visiting'
            for parent in self._nodes[name].parents:
                if parent in self._nodes:
                    visit(parent, path + [name])
            state[name] = 'done'
            order.append(name)

        for name in self._nodes:
            visit(name, [])

        return order

    def latent_nodes(self) -> list:
        return [n.name for n in self if n.is_latent]

    def observed_nodes(self) -> list:
        return [n.name for n in self if n.observed]

    def deterministic_nodes(self) -> list:
        return [n.name for n in self if n.kind == 'deterministic']

    def model_variables(self) -> list:
        """Names the compiled model is expected to declare."""
        return [n.name for n in self if n.kind != 'constant']

    def check_inputs(self, data: dict, inits: dict) -> None:
        """Ensure every stochastic node gets either data or an initial value.

        Constants and observed nodes must be present in data; latent nodes
        must be present in inits. Otherwise the sampler starts from a point
        with non-finite log density.
        """
        self.validate()

        no_data = [n.name for n in self if n.needs_data and n.name not in data]
        no_init = [n.name for n in self if n.is_latent and n.name not in inits]

        problems = []
        if no_data:
            problems.append(f'missing data for {no_data}')
        if no_init:
            problems.append(f'missing initial values for {no_init}')
        if problems:
            raise ValueError(f'{self.name}: ' + '; '.join(problems))

    def describe(self) -> str:
        """One line per node, in dependency order."""
        lines = []
        for name in self.topological_order():
            node = self._nodes[name]
            shape = f"[{', '.join(node.shape)}]" if node.shape else ''
            rhs = node.distribution or node.kind
            flag = ' (observed)' if node.observed else ''
            sep = '=' if node.kind == 'deterministic' else '~'
            lines.append(f'{name}{shape} {sep} {rhs}{flag}')
        return '\n'.join(lines)
