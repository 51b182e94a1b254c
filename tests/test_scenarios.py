"""End-to-end scenarios: snippets through extraction, resolution, graph
building, traversal and classification."""
from pathlib import Path

from bury.analyzer.engine import AnalysisOptions, analyze_project
from bury.analyzer.entry_points import default_entry_points
from bury.analyzer.model import Confidence, DefinitionKind, WarningKind
from bury.analyzer.scanner import discover_files, extract_units


def dead_names(result):
    """Qualified names of every finding."""
    return {f.identifier.split('::', 1)[1] for f in result.findings}


def finding(result, qualified_name):
    for f in result.findings:
        if f.identifier.split('::', 1)[1] == qualified_name:
            return f
    return None


class TestUnusedMethod:
    """A method nobody calls next to one that is called through an instance."""

    SOURCES = {
        'calc.py': '''
            class Calculator:
                def add(self, a, b):
                    return a + b

                def multiply(self, a, b):
                    return a * b


            def main():
                return Calculator().add(1, 2)
        ''',
    }

    def test_multiply_is_dead_with_high_confidence(self, analyze):
        result = analyze(self.SOURCES)

        multiply = finding(result, 'Calculator.multiply')
        assert multiply is not None, f"multiply should be reported, got {dead_names(result)}"
        assert multiply.confidence == Confidence.HIGH
        assert multiply.kind == DefinitionKind.METHOD
        assert multiply.declaring_file == 'calc.py'
        assert multiply.line == 5

    def test_called_code_is_reachable(self, analyze):
        result = analyze(self.SOURCES)

        assert dead_names(result) == {'Calculator.multiply'}
        assert 'calc.py::Calculator.add' in result.reachable
        assert 'calc.py::Calculator' in result.reachable
        assert 'calc.py::main' in result.reachable


class TestCrossFileHelper:
    """A helper used only from another file through `from a import helper`."""

    def test_imported_helper_is_reachable(self, analyze):
        result = analyze({
            'a.py': '''
                def helper():
                    return 42
            ''',
            'b.py': '''
                from a import helper


                def main():
                    return helper()
            ''',
        })

        assert 'a.py::helper' in result.reachable
        assert result.findings == [], f"Expected no findings, got {dead_names(result)}"
        assert not any(w.kind == WarningKind.UNRESOLVED_BINDING for w in result.warnings)


class TestDynamicLookup:
    """A function only reachable through getattr on the module."""

    SOURCES = {
        'dyn.py': '''
            import sys


            def maybe_used():
                pass


            def main():
                getattr(sys.modules[__name__], "maybe_used")()
        ''',
    }

    def test_not_reported_but_tagged_speculative(self, analyze):
        result = analyze(self.SOURCES)

        assert finding(result, 'maybe_used') is None, "Name-matched definitions must not be reported"
        reaches = [r for r in result.speculative if r.name == 'maybe_used']
        assert len(reaches) == 1
        assert reaches[0].confidence == Confidence.LOW
        assert reaches[0].trigger_file == 'dyn.py'
        assert reaches[0].trigger_line == 9

    def test_reported_low_when_speculation_is_off(self, analyze):
        result = analyze(self.SOURCES, follow_unresolved=False)

        dead = finding(result, 'maybe_used')
        assert dead is not None
        assert dead.confidence == Confidence.LOW, "Same-named unresolved reference keeps the label low"


class TestNoEntryPoints:
    """An empty root set reports everything and says so."""

    def test_everything_is_dead_with_warning(self, analyze):
        result = analyze({
            'a.py': '''
                def one():
                    two()


                def two():
                    pass


                class Three:
                    def method(self):
                        pass
            ''',
        }, specs=[])

        assert dead_names(result) == {'one', 'two', 'Three', 'Three.method'}
        assert result.roots == {}
        assert [w.kind for w in result.warnings] == [WarningKind.EMPTY_ROOT_SET]


class TestInheritedMethod:
    """A base class method called through a subclass instance."""

    def test_base_method_is_reachable(self, analyze):
        result = analyze({
            'shapes.py': '''
                class Base:
                    def m(self):
                        return 1


                class Derived(Base):
                    pass


                def main():
                    return Derived().m()
            ''',
        })

        assert 'shapes.py::Base.m' in result.reachable
        assert 'shapes.py::Base' in result.reachable, "Base class is reachable through the subclass"
        assert result.findings == []


class TestMalformedFile:
    """One file with a syntax error among ten."""

    def test_broken_file_is_skipped_with_warning(self, tmp_path: Path):
        for index in range(9):
            (tmp_path / f"mod{index}.py").write_text(f"def f{index}():\n    return {index}\n")
        (tmp_path / "broken.py").write_text("def broken(:\n    pass\n")

        paths = discover_files(tmp_path)
        units, warnings = extract_units(tmp_path, paths, workers=2)

        assert len(paths) == 10
        assert len(units) == 9
        assert 'broken.py' not in {u.path for u in units}
        failures = [w for w in warnings if w.kind == WarningKind.EXTRACTION_FAILURE]
        assert len(failures) == 1
        assert failures[0].file == 'broken.py'
        assert 'syntax error' in failures[0].message

    def test_analysis_completes(self, tmp_path: Path):
        (tmp_path / "app.py").write_text("def main():\n    helper()\n\n\ndef helper():\n    pass\n")
        (tmp_path / "broken.py").write_text("def broken(:\n    pass\n")

        specs = default_entry_points(conventions=('main',))
        result = analyze_project(tmp_path, specs, AnalysisOptions(workers=1))

        assert result.findings == []
        assert result.stats['files'] == 1
        assert result.stats['files_failed'] == 1
        assert any(w.kind == WarningKind.EXTRACTION_FAILURE and w.file == 'broken.py'
                   for w in result.warnings)

    def test_deeply_nested_file_is_skipped_with_warning(self, tmp_path: Path):
        (tmp_path / "ok.py").write_text("def main():\n    pass\n\n\ndef stale():\n    pass\n")
        terms = " + ".join(f"'s{index}'" for index in range(3000))
        (tmp_path / "table.py").write_text(f"X = {terms}\n")

        specs = default_entry_points(conventions=('main',))
        result = analyze_project(tmp_path, specs, AnalysisOptions(workers=1))

        assert dead_names(result) == {'stale'}
        assert result.stats['files_failed'] == 1
        failures = [w for w in result.warnings if w.kind == WarningKind.EXTRACTION_FAILURE]
        assert [w.file for w in failures] == ['table.py']
        assert "nested too deeply" in failures[0].message


class TestJavaScriptProject:
    """A small mixed ES module / CommonJS project."""

    def test_exports_and_requires(self, analyze):
        result = analyze({
            'src/format.js': '''
                function pad(value) {
                    return String(value).padStart(2, '0');
                }

                function unusedFormatter(value) {
                    return value;
                }

                module.exports = { pad, unusedFormatter };
            ''',
            'src/index.js': '''
                const { pad } = require('./format');

                function main() {
                    console.log(pad(1));
                }

                main();
            ''',
        }, conventions=('scripts',))

        assert 'src/format.js::pad' in result.reachable
        assert dead_names(result) == {'unusedFormatter'}
