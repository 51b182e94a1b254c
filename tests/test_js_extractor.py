"""Tests for the JavaScript / TypeScript symbol extractor."""
from bury.analyzer.extractor import OPAQUE
from bury.analyzer.model import DefinitionKind, Language, ReferenceKind, Visibility


def defs(unit):
    return {d.qualified_name: d for d in unit.definitions}


def refs(unit, name):
    return [r for r in unit.references if r.name == name]


def bindings(unit):
    return {(b.local_name, b.module, b.imported_name) for b in unit.bindings}


class TestEsModules:
    """import / export declarations."""

    SOURCE = '''
        import { helper as h } from './util';
        import Default from './default';
        import * as ns from './ns';

        export function run() {
            h();
            ns.go();
        }

        export const VALUE = 1;

        function internal() {}

        export default class App {}
    '''

    def test_import_bindings(self, unit):
        u = unit('src/app.js', self.SOURCE)

        assert u.language == Language.JAVASCRIPT
        assert bindings(u) == {
            ('h', './util', 'helper'),
            ('Default', './default', 'default'),
            ('ns', './ns', None),
        }

    def test_exported_declarations(self, unit):
        u = unit('src/app.js', self.SOURCE)
        found = defs(u)

        assert ('run', 'run') in u.exports
        assert ('VALUE', 'VALUE') in u.exports
        assert ('default', 'App') in u.exports
        assert found['run'].exported and found['VALUE'].exported and found['App'].exported
        assert not found['internal'].exported
        assert found['internal'].visibility == Visibility.PRIVATE, "Unexported top-level code is module-private"
        assert found['VALUE'].kind == DefinitionKind.VARIABLE

    def test_calls_through_bindings(self, unit):
        u = unit('src/app.js', self.SOURCE)

        assert refs(u, 'h')[0].kind == ReferenceKind.CALL
        go = refs(u, 'go')[0]
        assert go.receiver == 'ns'
        assert go.source == 'src/app.js::run'

    def test_reexports(self, unit):
        u = unit('index.ts', '''
            export { a, b as bee } from './a';
            export * from './b';
            export * as tools from './tools';
        ''')

        assert bindings(u) == {
            ('a', './a', 'a'),
            ('bee', './a', 'b'),
            ('*', './b', '*'),
            ('tools', './tools', None),
        }
        assert all(b.re_export for b in u.bindings)
        assert {name for name, _local in u.exports} == {'a', 'bee', 'tools'}
        assert {r.name for r in u.references if r.kind == ReferenceKind.RE_EXPORT} == {'a', 'bee', 'tools'}

    def test_dynamic_import_warns(self, unit):
        u = unit('lazy.js', '''
            async function load() {
                return import('./heavy');
            }
        ''')

        assert u.warnings == ('line 2: dynamic import()',)


class TestCommonJs:
    """require() and module.exports."""

    def test_require_and_exports(self, unit):
        u = unit('lib/loader.js', '''
            const fs = require('fs');
            const { parse, stringify: dump } = require('./parser');

            function load(path) {
                return parse(fs.readFileSync(path));
            }

            function save(path, data) {
                fs.writeFileSync(path, dump(data));
            }

            module.exports = { load, persist: save };
        ''')
        found = defs(u)

        assert bindings(u) == {
            ('fs', 'fs', None),
            ('parse', './parser', 'parse'),
            ('dump', './parser', 'stringify'),
        }
        assert set(u.exports) == {('load', 'load'), ('persist', 'save')}
        assert found['load'].exported and found['save'].exported
        assert not refs(u, "load"), "Listing a name in module.exports is not a use of it"
        assert refs(u, 'parse')[0].source == 'lib/loader.js::load'

    def test_default_export_identifier(self, unit):
        u = unit('greet.js', '''
            function greet() {}
            module.exports = greet;
        ''')

        assert u.exports == (('default', 'greet'),)
        assert defs(u)['greet'].exported


class TestClasses:
    """Class members, fields and private names."""

    def test_members(self, unit):
        u = unit('service.js', '''
            class Service extends Base {
                constructor() {
                    super();
                    this.start();
                }

                start() {}

                handle = () => {
                    this.#secret();
                }

                #secret() {}
            }
        ''')
        found = defs(u)

        assert set(found) == {'Service', 'Service.constructor', 'Service.start', 'Service.handle',
                              'Service.#secret'}
        assert found['Service'].base_classes == ('Base',)
        assert found['Service.handle'].kind == DefinitionKind.METHOD
        assert found['Service.#secret'].visibility == Visibility.PRIVATE
        assert refs(u, 'start')[0].receiver == 'this'
        assert refs(u, '#secret')[0].source == 'service.js::Service.handle'

    def test_new_expression_infers_type(self, unit):
        u = unit('main.js', '''
            function main() {
                const client = new ApiClient();
                client.fetch();
            }
        ''')

        fetch = refs(u, 'fetch')[0]
        assert fetch.receiver == OPAQUE
        assert fetch.receiver_type == 'ApiClient'
        assert refs(u, 'ApiClient')[0].kind == ReferenceKind.CALL

    def test_computed_member_with_literal(self, unit):
        u = unit('main.js', '''
            function dispatch(handlers) {
                handlers["onSave"]();
            }
        ''')

        dynamic = [r for r in u.references if r.kind == ReferenceKind.DYNAMIC]
        assert [r.name for r in dynamic] == ['onSave']


class TestTypeScript:
    """Interfaces, type aliases, enums and annotations."""

    def test_type_declarations(self, unit):
        u = unit('shapes.ts', '''
            interface Shape {
                area(): number;
            }

            type Id = string;

            enum Color { Red, Green }

            export class Square implements Shape {
                area(): number {
                    return 1;
                }
            }

            function paint(shape: Shape, color: Color): Id {
                return shape.area().toString();
            }
        ''')
        found = defs(u)

        assert u.language == Language.TYPESCRIPT
        assert found['Shape'].kind == DefinitionKind.INTERFACE
        assert found['Id'].kind == DefinitionKind.INTERFACE
        assert found['Color'].kind == DefinitionKind.CLASS
        assert found['Square'].base_classes == ('Shape',)
        assert {r.kind for r in refs(u, 'Shape')} == {ReferenceKind.TYPE}
        area_calls = [r for r in refs(u, 'area') if r.kind == ReferenceKind.CALL]
        assert area_calls[0].receiver_type == 'Shape', "Parameter annotations type the receiver"

    def test_tsx_components(self, unit):
        u = unit('App.tsx', '''
            import { Button } from './Button';

            export const App = () => <div><Button label="ok" /></div>;
        ''')

        assert u.language == Language.TSX
        assert defs(u)['App'].kind == DefinitionKind.FUNCTION
        assert [r.source for r in refs(u, 'Button')] == ['App.tsx::App']
        assert not refs(u, 'div'), "Lowercase JSX tags are intrinsic elements"


class TestEntryHints:
    """Test suites and top-level script calls."""

    def test_test_suite(self, unit):
        u = unit('math.test.js', '''
            describe('add', () => {
                it('adds', () => {
                    expect(add(1, 2)).toBe(3);
                });
            });
        ''')

        assert 'test-suite' in u.entry_hints

    def test_script_call(self, unit):
        u = unit('cli.js', '''
            function main() {}
            main();
        ''')

        assert 'script' in u.entry_hints

    def test_library_has_no_hints(self, unit):
        u = unit('lib.js', '''
            export function main() {}
        ''')

        assert u.entry_hints == ()


class TestMinifiedCode:
    """Bundles that repeat a name many times on one line."""

    BUNDLE = "(function(){function t(){}})();(function(){function t(){}})();(function(){function t(){}})();\n"

    def test_identifiers_stay_unique(self, unit):
        u = unit('bundle.js', self.BUNDLE)
        identifiers = [d.identifier for d in u.definitions if d.name == 't']

        assert len(identifiers) == 3
        assert len(set(identifiers)) == 3, f"Duplicate identifiers: {identifiers}"
        assert identifiers[0] == 'bundle.js::t'

    def test_bundle_analyzes(self, analyze):
        result = analyze({'bundle.js': self.BUNDLE})

        assert len(result.findings) == 3
        assert {f.name for f in result.findings} == {'t'}
