"""Tests for the tree-sitter Python symbol extractor."""
import pytest

from bury.analyzer.errors import ExtractionFailure
from bury.analyzer.extractor import OPAQUE
from bury.analyzer.model import DefinitionKind, Language, ReferenceKind, Visibility


def defs(unit):
    return {d.qualified_name: d for d in unit.definitions}


def refs(unit, name):
    return [r for r in unit.references if r.name == name]


class TestDefinitions:
    """Functions, methods, closures, classes and module variables."""

    SOURCE = '''
        import os

        CONSTANT = 1


        class Shape:
            def area(self):
                def helper():
                    return 0
                return helper()


        def _private():
            pass


        handler = lambda x: x
    '''

    def test_kinds_and_nesting(self, unit):
        u = unit('shapes.py', self.SOURCE)
        found = defs(u)

        assert u.language == Language.PYTHON
        assert set(found) == {'CONSTANT', 'Shape', 'Shape.area', 'Shape.area.helper', '_private', 'handler'}
        assert found['CONSTANT'].kind == DefinitionKind.VARIABLE
        assert found['Shape'].kind == DefinitionKind.CLASS
        assert found['Shape.area'].kind == DefinitionKind.METHOD
        assert found['Shape.area.helper'].kind == DefinitionKind.FUNCTION
        assert found['handler'].kind == DefinitionKind.FUNCTION, "A module-level lambda counts as a function"

    def test_identifiers_scopes_and_spans(self, unit):
        u = unit('shapes.py', self.SOURCE)
        found = defs(u)

        assert found['Shape.area'].identifier == 'shapes.py::Shape.area'
        assert found['Shape.area'].scope == 'shapes.py::Shape'
        assert found['Shape.area.helper'].scope == 'shapes.py::Shape.area'
        assert found['Shape'].scope is None
        assert found['Shape'].span.line == 6
        assert found['Shape.area'].span.column == 4

    def test_visibility_and_exports(self, unit):
        u = unit('shapes.py', self.SOURCE)
        found = defs(u)

        assert found['_private'].visibility == Visibility.PRIVATE
        assert not found['_private'].exported
        assert found['Shape'].exported
        assert not found['Shape.area'].exported, "Only top-level names are exported"
        assert not u.explicit_exports
        assert ('CONSTANT', 'CONSTANT') in u.exports

    def test_dunder_methods_are_public(self, unit):
        u = unit('a.py', '''
            class Box:
                def __init__(self):
                    self._secret = 1

                def _hidden(self):
                    pass
        ''')
        found = defs(u)

        assert found['Box.__init__'].visibility == Visibility.PUBLIC
        assert found['Box._hidden'].visibility == Visibility.PRIVATE

    def test_base_classes(self, unit):
        u = unit('a.py', '''
            class A(Base, mixins.Loggable, metaclass=Meta):
                pass


            class B(Generic[T]):
                pass
        ''')
        found = defs(u)

        assert found['A'].base_classes == ('Base', 'mixins.Loggable')
        assert found['B'].base_classes == ('Generic',)
        assert refs(u, 'Meta'), "Keyword arguments of a class statement are still references"

    def test_decorators_are_recorded_without_arguments(self, unit):
        u = unit('views.py', '''
            @app.route("/")
            @login_required
            def index():
                pass
        ''')

        assert defs(u)['index'].decorators == ('app.route', 'login_required')
        route = refs(u, 'route')
        assert route and route[0].kind == ReferenceKind.DECORATOR
        assert route[0].receiver == 'app'

    def test_syntax_error_raises(self, unit):
        with pytest.raises(ExtractionFailure) as exc_info:
            unit('broken.py', 'def broken(:\n    pass\n')

        assert exc_info.value.path == 'broken.py'
        assert 'syntax error' in exc_info.value.message

    def test_deep_nesting_raises_extraction_failure(self, unit):
        terms = " + ".join(f"'s{index}'" for index in range(3000))

        with pytest.raises(ExtractionFailure) as exc_info:
            unit('table.py', f"X = {terms}\n")

        assert exc_info.value.path == 'table.py'
        assert "nested too deeply" in exc_info.value.message

    def test_redefinitions_get_distinct_identifiers(self, unit):
        u = unit('a.py', '''
            def handler():
                pass


            def handler():
                pass


            def handler():
                pass
        ''')
        identifiers = [d.identifier for d in u.definitions]

        assert identifiers == ['a.py::handler', 'a.py::handler@5', 'a.py::handler@9']


class TestReferences:
    """References, local names and receivers."""

    def test_locals_are_not_references(self, unit):
        u = unit('a.py', '''
            def total(items):
                result = 0
                for item in items:
                    result += item
                return result
        ''')
        names = {r.name for r in u.references}

        assert not names & {'items', 'result', 'item'}, f"Locals leaked into references: {names}"

    def test_self_call_keeps_receiver(self, unit):
        u = unit('a.py', '''
            class Job:
                def run(self):
                    self.step()

                def step(self):
                    pass
        ''')

        step = refs(u, 'step')
        assert len(step) == 1
        assert step[0].kind == ReferenceKind.CALL
        assert step[0].receiver == 'self'
        assert step[0].source == 'a.py::Job.run'

    def test_constructor_assignment_infers_receiver_type(self, unit):
        u = unit('a.py', '''
            def main():
                calc = Calculator()
                calc.add(1)
        ''')

        add = refs(u, 'add')[0]
        assert add.receiver == OPAQUE
        assert add.receiver_type == 'Calculator'

    def test_annotated_parameter_infers_receiver_type(self, unit):
        u = unit('a.py', '''
            def handle(request: "Request", repo: Repository):
                repo.save(request)
        ''')

        save = refs(u, 'save')[0]
        assert save.receiver_type == 'Repository'
        assert [r.kind for r in refs(u, 'Request')] == [ReferenceKind.TYPE], \
            "String annotations are forward references"

    def test_module_level_references_have_no_source(self, unit):
        u = unit('a.py', '''
            def setup():
                pass


            setup()
        ''')

        assert refs(u, 'setup')[0].source is None

    def test_main_guard_marks_script(self, unit):
        u = unit('cli.py', '''
            def main():
                pass


            if __name__ == "__main__":
                main()
        ''')

        assert 'script' in u.entry_hints

    def test_no_guard_no_script_hint(self, unit):
        assert unit('lib.py', 'def main():\n    pass\n').entry_hints == ()


class TestDynamicAccess:
    """Dynamic lookups with literal names become references; others become warnings."""

    def test_literal_names(self, unit):
        u = unit('a.py', '''
            def main(obj, attr):
                getattr(obj, "run_job")()
                getattr(obj, attr)
                eval("cleanup()")
                globals()["registry"]
        ''')
        dynamic = {r.name for r in u.references if r.kind == ReferenceKind.DYNAMIC}

        assert dynamic == {'run_job', 'cleanup', 'registry'}
        assert all(r.receiver == OPAQUE for r in u.references if r.kind == ReferenceKind.DYNAMIC)
        assert any('computed attribute name in getattr()' in w for w in u.warnings)

    def test_dynamic_imports_warn(self, unit):
        u = unit('a.py', '''
            import importlib


            def load(name):
                return importlib.import_module(name)
        ''')

        assert u.warnings == ('line 5: dynamic import via importlib.import_module()',)


class TestImports:
    """Import statements become bindings."""

    def test_binding_shapes(self, unit):
        u = unit('app/main.py', '''
            import os.path
            import numpy as np
            from .models import User as U
            from x import *
        ''')
        bindings = {(b.local_name, b.module, b.imported_name) for b in u.bindings}

        assert bindings == {
            ('os', 'os.path', None),
            ('np', 'numpy', None),
            ('U', '.models', 'User'),
            ('*', 'x', '*'),
        }
        assert not any(b.re_export for b in u.bindings)

    def test_function_level_import_has_source(self, unit):
        u = unit('a.py', '''
            def lazy():
                from heavy import thing
                return thing()
        ''')

        assert u.bindings[0].source == 'a.py::lazy'

    def test_all_controls_exports(self, unit):
        u = unit('pkg/facade.py', '''
            from .impl import api, other

            __all__ = ["api", "public_helper"]


            def public_helper():
                pass


            def not_listed():
                pass
        ''')
        found = defs(u)

        assert u.explicit_exports
        assert set(u.exports) == {('api', 'api'), ('public_helper', 'public_helper')}
        assert found['public_helper'].exported
        assert not found['not_listed'].exported
        re_exported = {b.local_name for b in u.bindings if b.re_export}
        assert re_exported == {'api'}
        assert [r.kind for r in refs(u, 'api')] == [ReferenceKind.RE_EXPORT]

    def test_package_init_reexports_imports(self, unit):
        u = unit('pkg/__init__.py', '''
            from .core import Engine
        ''')

        assert u.bindings[0].re_export
        assert ('Engine', 'Engine') in u.exports
