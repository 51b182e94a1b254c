"""Tests for the reachability traversal.

Properties checked here hold for any graph: adding roots never shrinks the
reachable set, reruns are identical, every resolved edge out of a reachable
node leads to a reachable node, and cycles terminate.
"""
import pytest

from bury.analyzer.model import module_node_id
from bury.analyzer.reachability import ReachabilityAnalyzer, reachable_from


SOURCES = {
    'app.py': '''
        from lib import parse


        def main():
            parse()
            Runner().start()


        class Runner:
            def start(self):
                self.step()

            def step(self):
                pass


        def ping():
            pong()


        def pong():
            ping()


        def orphan():
            pass
    ''',
    'lib.py': '''
        def parse():
            return tokenize()


        def tokenize():
            pass


        def unused():
            pass
    ''',
}


@pytest.fixture
def graph(graph_of):
    return graph_of(SOURCES)


class TestTraversal:
    """Basic reachability."""

    def test_reachable_and_dead(self, graph):
        result = ReachabilityAnalyzer(graph).analyze(['app.py::main'])

        for identifier in ('app.py::main', 'app.py::Runner', 'app.py::Runner.start', 'app.py::Runner.step',
                           'lib.py::parse', 'lib.py::tokenize'):
            assert result.is_reachable(identifier), f"{identifier} should be reachable"
        assert result.dead == ['app.py::orphan', 'app.py::ping', 'app.py::pong', 'lib.py::unused']

    def test_module_code_becomes_live(self, graph):
        result = ReachabilityAnalyzer(graph).analyze(['app.py::main'])

        assert result.is_reachable(module_node_id('app.py'))
        assert result.is_reachable(module_node_id('lib.py')), "Importing a module executes it"

    def test_unknown_roots_are_ignored(self, graph):
        result = ReachabilityAnalyzer(graph).analyze(['nowhere.py::main'])

        assert result.order == []
        assert len(result.dead) == len(graph.definitions)


class TestProperties:
    """Monotonicity, idempotence, soundness and cycle safety."""

    def test_monotonic_in_roots(self, graph):
        small = reachable_from(graph, ['lib.py::parse'])
        large = reachable_from(graph, ['lib.py::parse', 'app.py::ping'])

        assert small <= large
        assert 'app.py::pong' in large - small

    def test_idempotent(self, graph):
        first = ReachabilityAnalyzer(graph).analyze(['app.py::main'])
        second = ReachabilityAnalyzer(graph).analyze(['app.py::main'])

        assert first.order == second.order
        assert first.dead == second.dead

    def test_root_order_does_not_matter(self, graph):
        forward = ReachabilityAnalyzer(graph).analyze(['app.py::main', 'app.py::ping'])
        backward = ReachabilityAnalyzer(graph).analyze(['app.py::ping', 'app.py::main'])

        assert forward.order == backward.order

    def test_resolved_edges_are_followed(self, graph):
        result = ReachabilityAnalyzer(graph).analyze(['app.py::main'])

        for source, target in graph.graph.edges:
            if result.is_reachable(source):
                assert result.is_reachable(target), f"{source} -> {target} leaves the reachable set"

    def test_cycle_terminates(self, graph):
        from_cycle = reachable_from(graph, ['app.py::ping'])

        assert {'app.py::ping', 'app.py::pong'} <= from_cycle
        assert 'app.py::orphan' not in from_cycle


class TestSpeculative:
    """Unresolved references keep same-named definitions alive."""

    SOURCES = {
        'plugins.py': '''
            def main(registry):
                registry.dispatch()


            def dispatch():
                finish()


            def finish():
                pass
        ''',
    }

    def test_name_match_and_descendants_are_speculative(self, graph_of):
        graph = graph_of(self.SOURCES)
        result = ReachabilityAnalyzer(graph).analyze(['plugins.py::main'])

        assert result.dead == []
        assert set(result.speculative) >= {'plugins.py::dispatch', 'plugins.py::finish'}
        trigger = result.speculative['plugins.py::finish']
        assert trigger.reference.name == 'dispatch', "Descendants carry the triggering reference"
        assert 'plugins.py::main' not in result.speculative

    def test_speculation_can_be_disabled(self, graph_of):
        graph = graph_of(self.SOURCES)
        result = ReachabilityAnalyzer(graph, follow_unresolved=False).analyze(['plugins.py::main'])

        assert result.dead == ['plugins.py::dispatch', 'plugins.py::finish']
        assert result.speculative == {}

    def test_unreachable_unresolved_reference_has_no_effect(self, graph_of):
        graph = graph_of(self.SOURCES)
        result = ReachabilityAnalyzer(graph).analyze([])

        assert result.speculative == {}
        assert len(result.dead) == 3
