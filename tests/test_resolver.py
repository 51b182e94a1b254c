"""Tests for module resolution and binding resolution across files."""
import pytest

from bury.analyzer.model import WarningKind
from bury.analyzer.resolver import BindingStatus, ModuleResolver, common_prefix_length


@pytest.fixture
def resolver_for(unit):
    """Build a ModuleResolver from {path: code}."""
    def build(sources, **options):
        units = [unit(path, code) for path, code in sources.items()]
        return ModuleResolver(units, **options)
    return build


def resolve(resolver, path, local_name):
    """Resolve the binding of local_name declared in path."""
    for binding in resolver.units[path].bindings:
        if binding.local_name == local_name:
            return resolver.resolve_binding(binding)
    raise AssertionError(f"{path} declares no binding named {local_name}")


def warning_kinds(resolver):
    return [w.kind for w in resolver.warnings]


class TestPythonModules:
    """Absolute, relative and package imports."""

    SOURCES = {
        'pkg/__init__.py': '',
        'pkg/util.py': 'def helper():\n    pass\n',
        'pkg/main.py': '''
            from .util import helper
            from pkg.util import helper as h2
            from . import util
            import requests
        ''',
    }

    def test_relative_and_absolute(self, resolver_for):
        resolver = resolver_for(self.SOURCES)

        for local in ('helper', 'h2'):
            resolved = resolve(resolver, 'pkg/main.py', local)
            assert resolved.status == BindingStatus.RESOLVED
            assert resolved.targets == ('pkg/util.py::helper',)
            assert resolved.imported_module == 'pkg/util.py'
        assert resolver.warnings == []

    def test_submodule_import(self, resolver_for):
        resolved = resolve(resolver_for(self.SOURCES), 'pkg/main.py', 'util')

        assert resolved.status == BindingStatus.MODULE
        assert resolved.module == 'pkg/util.py'

    def test_third_party_is_external(self, resolver_for):
        resolved = resolve(resolver_for(self.SOURCES), 'pkg/main.py', 'requests')

        assert resolved.status == BindingStatus.EXTERNAL
        assert resolved.targets == ()

    def test_missing_project_module_warns(self, resolver_for):
        resolver = resolver_for({
            'pkg/__init__.py': '',
            'app.py': 'from pkg.missing import thing\n',
        })

        assert resolve(resolver, 'app.py', 'thing').status == BindingStatus.UNRESOLVED
        assert warning_kinds(resolver) == [WarningKind.UNRESOLVED_BINDING]
        assert resolver.warnings[0].file == 'app.py'

    def test_missing_name_warns(self, resolver_for):
        resolver = resolver_for({
            'lib.py': 'def present():\n    pass\n',
            'app.py': 'from lib import absent\n',
        })

        assert resolve(resolver, 'app.py', 'absent').status == BindingStatus.UNRESOLVED
        assert "'absent' not found in lib.py" in resolver.warnings[0].message

    def test_src_layout(self, resolver_for):
        resolver = resolver_for({
            'src/tool/__init__.py': '',
            'src/tool/core.py': 'def run():\n    pass\n',
            'tests/test_core.py': 'from tool.core import run\n',
        })

        assert resolve(resolver, 'tests/test_core.py', 'run').targets == ('src/tool/core.py::run',)

    def test_parent_package(self, resolver_for):
        resolver = resolver_for(self.SOURCES)

        assert resolver.parent_package('pkg/util.py') == 'pkg/__init__.py'
        assert resolver.parent_package('pkg/__init__.py') is None


class TestReexports:
    """Re-export chains through packages and wildcards."""

    def test_package_init_reexport(self, resolver_for):
        resolver = resolver_for({
            'pkg/__init__.py': 'from .impl import Thing\n',
            'pkg/impl.py': 'class Thing:\n    pass\n',
            'app.py': 'from pkg import Thing\n',
        })

        assert resolve(resolver, 'app.py', 'Thing').targets == ('pkg/impl.py::Thing',)

    def test_all_restricts_wildcard(self, resolver_for):
        resolver = resolver_for({
            'shapes.py': '__all__ = ["Circle"]\n\nclass Circle:\n    pass\n\nclass Square:\n    pass\n',
            'app.py': 'from shapes import *\n',
        })
        table = resolver.binding_table('app.py')

        assert set(table) == {'Circle'}
        assert table['Circle'][0].targets == ('shapes.py::Circle',)

    def test_ambiguous_wildcards_pick_one_and_warn(self, resolver_for):
        resolver = resolver_for({
            'lib/__init__.py': 'from .a import *\nfrom .b import *\n',
            'lib/a.py': 'def dup():\n    pass\n',
            'lib/b.py': 'def dup():\n    pass\n',
            'app.py': 'from lib import dup\n',
        })
        resolved = resolve(resolver, 'app.py', 'dup')

        assert resolved.status == BindingStatus.AMBIGUOUS
        assert resolved.targets == ('lib/a.py::dup',), "Ties break on path order"
        assert resolved.rejected == ('lib/b.py::dup',)
        assert WarningKind.RESOLUTION_AMBIGUITY in warning_kinds(resolver)

    def test_nearer_module_wins_ambiguity(self, resolver_for):
        resolver = resolver_for({
            'app/__init__.py': '',
            'app/hub.py': 'from app.local import *\nfrom vendor_copy import *\n',
            'app/local.py': 'def shared():\n    pass\n',
            'vendor_copy.py': 'def shared():\n    pass\n',
        })

        assert resolver.lookup_export('app/hub.py', 'shared').targets == ('app/local.py::shared',)

    def test_depth_bound(self, resolver_for):
        sources = {
            'm0.py': 'def target():\n    pass\n',
            'm1.py': 'from m0 import target\n',
            'm2.py': 'from m1 import target\n',
            'm3.py': 'from m2 import target\n',
            'app.py': 'from m3 import target\n',
        }

        bounded = resolver_for(sources, max_depth=2)
        assert resolve(bounded, 'app.py', 'target').status == BindingStatus.DEPTH_EXCEEDED
        assert WarningKind.DEPTH_EXCEEDED in warning_kinds(bounded)

        unbounded = resolver_for(sources)
        assert resolve(unbounded, 'app.py', 'target').targets == ('m0.py::target',)

    def test_import_cycle_terminates(self, resolver_for):
        resolver = resolver_for({
            'a.py': 'from b import x\n',
            'b.py': 'from a import x\n',
        })

        assert resolve(resolver, 'a.py', 'x').status == BindingStatus.UNRESOLVED
        assert resolve(resolver, 'b.py', 'x').status == BindingStatus.UNRESOLVED


class TestJavaScriptModules:
    """Relative specifiers, index files, aliases and packages."""

    def test_index_file(self, resolver_for):
        resolver = resolver_for({
            'src/util/index.ts': 'export function fmt() {}\n',
            'src/app.ts': "import { fmt } from './util';\n",
        })

        assert resolve(resolver, 'src/app.ts', 'fmt').targets == ('src/util/index.ts::fmt',)

    def test_extension_in_specifier(self, resolver_for):
        resolver = resolver_for({
            'lib/helper.ts': 'export const assist = () => 1;\n',
            'main.ts': "import { assist } from './lib/helper.js';\n",
        })

        assert resolve(resolver, 'main.ts', 'assist').targets == ('lib/helper.ts::assist',)

    def test_tsconfig_paths(self, resolver_for):
        resolver = resolver_for({
            'src/lib/math.ts': 'export const add = (a, b) => a + b;\n',
            'src/main.ts': "import { add } from '@lib/math';\n",
        }, ts_paths={'@lib/*': ['src/lib/*']})

        assert resolve(resolver, 'src/main.ts', 'add').targets == ('src/lib/math.ts::add',)

    def test_bare_package_is_external(self, resolver_for):
        resolver = resolver_for({'main.js': "import React from 'react';\n"})

        assert resolve(resolver, 'main.js', 'React').status == BindingStatus.EXTERNAL
        assert resolver.warnings == []

    def test_export_star_chain(self, resolver_for):
        resolver = resolver_for({
            'src/index.js': "export * from './a';\n",
            'src/a.js': 'export function alpha() {}\n',
            'main.js': "import { alpha } from './src';\n",
        })

        assert resolve(resolver, 'main.js', 'alpha').targets == ('src/a.js::alpha',)

    def test_missing_relative_module_warns(self, resolver_for):
        resolver = resolver_for({'main.js': "import { gone } from './gone';\n"})

        assert resolve(resolver, 'main.js', 'gone').status == BindingStatus.UNRESOLVED
        assert warning_kinds(resolver) == [WarningKind.UNRESOLVED_BINDING]


def test_common_prefix_length():
    """Directory components shared by two paths."""
    assert common_prefix_length('a/b/c.py', 'a/b/d.py') == 2
    assert common_prefix_length('a/b/c.py', 'a/x/d.py') == 1
    assert common_prefix_length('x.py', 'y.py') == 1
