"""Python symbol extraction (tree-sitter-python).

Definitions: functions, methods, nested closures, classes and module-level
variables. References: calls, attribute loads, bare name loads, decorators,
annotations (string forward references included) and dynamic lookups with
literal names.
"""
import keyword
import re
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple
from tree_sitter import Node

from .extractor import OPAQUE, Scope, SymbolExtractor
from .model import DefinitionKind, Language, Reference, ReferenceKind, Visibility


SELF_NAMES = {'self', 'cls'}
DYNAMIC_ATTRIBUTE_CALLS = {'getattr', 'hasattr', 'setattr', 'delattr'}
EVAL_CALLS = {'eval', 'exec'}
NAMESPACE_CALLS = {'globals', 'locals', 'vars'}

TARGET_CONTAINERS = {
    'pattern_list', 'tuple_pattern', 'list_pattern', 'expression_list',
    'tuple', 'list', 'list_splat_pattern', 'list_splat', 'as_pattern_target',
    'parenthesized_expression',
}
SCOPE_BOUNDARIES = {'function_definition', 'class_definition', 'lambda', 'decorated_definition'}

MAIN_GUARDS = {
    '__name__=="__main__"', "__name__=='__main__'",
    '"__main__"==__name__', "'__main__'==__name__",
}

_STRING_LITERAL = re.compile(r'^[rRuUbB]*("""|\'\'\'|"|\')(.*)\1$', re.DOTALL)
_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


def is_dunder(name: str) -> bool:
    return len(name) > 4 and name.startswith('__') and name.endswith('__')


def python_visibility(name: str) -> Visibility:
    if name.startswith('_') and not is_dunder(name):
        return Visibility.PRIVATE
    return Visibility.PUBLIC


class PythonExtractor(SymbolExtractor):
    """Extract definitions, references and bindings from a Python module."""

    language = Language.PYTHON

    def __init__(self, path: str, source: bytes):
        super().__init__(path, source)
        self.is_package_init = path.rsplit('/', 1)[-1] == '__init__.py'
        self._all_names: Optional[List[str]] = None

    def walk(self, root: Node):
        if self.path.rsplit('/', 1)[-1] == '__main__.py':
            self.entry_hints.append('script')
        assigned, bound, _nested, _globals, types = self._collect_locals(root)
        module_scope = Scope(locals=frozenset(bound - assigned), types=types)
        self._visit_children(root, module_scope)

    # ------------------------------------------------------------- dispatch

    def _visit(self, node: Node, scope: Scope):
        handler = getattr(self, f'_visit_{node.type}', None)
        if handler is not None:
            handler(node, scope)
        else:
            self._visit_children(node, scope)

    def _visit_children(self, node: Node, scope: Scope):
        for child in node.named_children:
            self._visit(child, scope)

    # ---------------------------------------------------------- definitions

    def _visit_decorated_definition(self, node: Node, scope: Scope):
        decorators = []
        for child in node.named_children:
            if child.type != 'decorator':
                continue
            expression = child.named_children[0] if child.named_children else None
            if expression is None:
                continue
            decorators.append(self._decorator_name(expression))
            if expression.type == 'call':
                self._reference_callee(expression.child_by_field_name('function'), scope, ReferenceKind.DECORATOR)
                self._visit_arguments(expression.child_by_field_name('arguments'), scope)
            else:
                self._reference_callee(expression, scope, ReferenceKind.DECORATOR)

        definition = node.child_by_field_name('definition')
        if definition is None:
            return
        if definition.type == 'function_definition':
            self._visit_function_definition(definition, scope, decorators)
        elif definition.type == 'class_definition':
            self._visit_class_definition(definition, scope, decorators)
        else:
            self._visit(definition, scope)

    def _decorator_name(self, expression: Node) -> str:
        if expression.type == 'call':
            expression = expression.child_by_field_name('function')
        return re.sub(r'\s+', '', self.text(expression))

    def _visit_function_definition(self, node: Node, scope: Scope, decorators=()):
        name = self.text(node.child_by_field_name('name'))
        kind = DefinitionKind.METHOD if scope.in_class_body else DefinitionKind.FUNCTION
        definition = self.add_definition(node, name, kind, scope, python_visibility(name),
                                         decorators=decorators)

        param_names, param_types = self._visit_parameters(node.child_by_field_name('parameters'), scope)
        return_type = node.child_by_field_name('return_type')
        if return_type is not None:
            self._visit(return_type, scope.as_type())

        body = node.child_by_field_name('body')
        if body is None:
            return
        assigned, bound, nested, global_names, types = self._collect_locals(body)
        local_names = (assigned | bound | param_names) - nested - global_names
        body_types = dict(param_types)
        body_types.update(types)
        body_scope = scope.child(definition, local_names, body_types)
        self._visit_children(body, body_scope)

    def _visit_class_definition(self, node: Node, scope: Scope, decorators=()):
        name = self.text(node.child_by_field_name('name'))
        bases = []
        superclasses = node.child_by_field_name('superclasses')
        if superclasses is not None:
            for argument in superclasses.named_children:
                if argument.type == 'keyword_argument':
                    self._visit(argument, scope)
                    continue
                if argument.type == 'comment':
                    continue
                base = argument.child_by_field_name('value') if argument.type == 'subscript' else argument
                if base is not None and base.type in ('identifier', 'attribute'):
                    bases.append(re.sub(r'\s+', '', self.text(base)))
                self._visit(argument, scope)

        definition = self.add_definition(node, name, DefinitionKind.CLASS, scope,
                                         python_visibility(name), base_classes=bases,
                                         decorators=decorators)
        body = node.child_by_field_name('body')
        if body is not None:
            self._visit_children(body, scope.child(definition, in_class_body=True))

    def _visit_parameters(self, params: Optional[Node], scope: Scope) -> Tuple[Set[str], Dict[str, str]]:
        """Collect parameter names and annotated types.

        Defaults and annotations are evaluated in the enclosing scope.
        """
        names: Set[str] = set()
        types: Dict[str, str] = {}
        if params is None:
            return names, types
        for param in params.named_children:
            if param.type in ('identifier', 'list_splat_pattern', 'dictionary_splat_pattern', 'tuple_pattern'):
                names.update(self._target_names(param))
                continue
            if param.type in ('typed_parameter', 'typed_default_parameter', 'default_parameter'):
                name_node = param.child_by_field_name('name')
                if name_node is None:
                    name_node = next((c for c in param.named_children
                                      if c.type in ('identifier', 'list_splat_pattern', 'dictionary_splat_pattern')), None)
                param_names = self._target_names(name_node) if name_node is not None else []
                names.update(param_names)
                annotation = param.child_by_field_name('type')
                if annotation is not None:
                    self._visit(annotation, scope.as_type())
                    annotated = self._class_name_of(annotation.named_children[0] if annotation.named_children else None)
                    if annotated and len(param_names) == 1:
                        types[param_names[0]] = annotated
                value = param.child_by_field_name('value')
                if value is not None:
                    self._visit(value, scope)
        return names, types

    def _visit_lambda(self, node: Node, scope: Scope):
        names: Set[str] = set()
        params = node.child_by_field_name('parameters')
        if params is not None:
            names, _types = self._visit_parameters(params, scope)
        body = node.child_by_field_name('body')
        if body is not None:
            self._visit(body, replace(scope, locals=scope.locals | frozenset(names)))

    # ---------------------------------------------------------- assignments

    def _visit_assignment(self, node: Node, scope: Scope):
        left = node.child_by_field_name('left')
        right = node.child_by_field_name('right')
        annotation = node.child_by_field_name('type')
        if annotation is not None:
            self._visit(annotation, scope.as_type())

        if scope.definition is None and left is not None:
            names = self._target_names(left)
            if names == ['__all__']:
                self._record_all(right, extend=False)
                return
            existing = self.top_level_names()
            for name in names:
                if is_dunder(name) or name in existing:
                    continue
                if right is not None and right.type == 'lambda' and len(names) == 1:
                    definition = self.add_definition(node, name, DefinitionKind.FUNCTION, scope,
                                                     python_visibility(name))
                    self._visit_lambda(right, scope.child(definition))
                    right = None
                else:
                    self.add_definition(node, name, DefinitionKind.VARIABLE, scope, python_visibility(name))

        if left is not None:
            self._visit_target(left, scope)
        if right is not None:
            self._visit(right, scope)

    def _visit_augmented_assignment(self, node: Node, scope: Scope):
        left = node.child_by_field_name('left')
        if scope.definition is None and self.text(left) == '__all__':
            self._record_all(node.child_by_field_name('right'), extend=True)
            return
        self._visit_children(node, scope)

    def _visit_target(self, target: Node, scope: Scope):
        """Visit the load parts of an assignment target (obj in obj.x = ..., etc)."""
        if target.type == 'identifier':
            return
        if target.type == 'attribute':
            self._visit(target.child_by_field_name('object'), scope)
        elif target.type == 'subscript':
            self._visit_children(target, scope)
        elif target.type in TARGET_CONTAINERS:
            for child in target.named_children:
                self._visit_target(child, scope)

    def _record_all(self, value: Optional[Node], extend: bool):
        if value is None or value.type not in ('list', 'tuple'):
            return
        names = [self._string_value(item) for item in value.named_children if item.type == 'string']
        names = [n for n in names if n]
        self.explicit_exports = True
        if extend and self._all_names is not None:
            self._all_names.extend(names)
        else:
            self._all_names = names

    def _visit_for_statement(self, node: Node, scope: Scope):
        left = node.child_by_field_name('left')
        if left is not None:
            self._visit_target(left, scope)
        for field_name in ('right', 'body', 'alternative'):
            child = node.child_by_field_name(field_name)
            if child is not None:
                self._visit(child, scope)

    def _visit_for_in_clause(self, node: Node, scope: Scope):
        right = node.child_by_field_name('right')
        if right is not None:
            self._visit(right, scope)

    def _visit_as_pattern(self, node: Node, scope: Scope):
        for child in node.named_children:
            if child.type != 'as_pattern_target':
                self._visit(child, scope)

    def _visit_except_clause(self, node: Node, scope: Scope):
        after_as = False
        for child in node.children:
            if child.type == 'as':
                after_as = True
                continue
            if after_as and child.type == 'identifier':
                after_as = False
                continue
            if child.is_named:
                self._visit(child, scope)

    def _visit_named_expression(self, node: Node, scope: Scope):
        value = node.child_by_field_name('value')
        if value is not None:
            self._visit(value, scope)

    def _visit_keyword_argument(self, node: Node, scope: Scope):
        value = node.child_by_field_name('value')
        if value is not None:
            self._visit(value, scope)

    def _visit_global_statement(self, node: Node, scope: Scope):
        pass

    def _visit_nonlocal_statement(self, node: Node, scope: Scope):
        pass

    def _visit_future_import_statement(self, node: Node, scope: Scope):
        pass

    # ---------------------------------------------------------- references

    def _visit_identifier(self, node: Node, scope: Scope):
        name = self.text(node)
        if name in scope.locals:
            return
        self.add_reference(name, ReferenceKind.NAME, node, scope)

    def _visit_attribute(self, node: Node, scope: Scope):
        self._reference_callee(node, scope, ReferenceKind.ATTRIBUTE)

    def _visit_type(self, node: Node, scope: Scope):
        self._visit_children(node, scope.as_type())

    def _visit_string(self, node: Node, scope: Scope):
        if scope.in_type:
            value = self._string_value(node)
            for name in _IDENTIFIER.findall(value or ''):
                if not keyword.iskeyword(name):
                    self.add_reference(name, ReferenceKind.TYPE, node, scope)
            return
        self._visit_children(node, scope)

    def _visit_call(self, node: Node, scope: Scope):
        function = node.child_by_field_name('function')
        arguments = node.child_by_field_name('arguments')

        if function is not None and function.type == 'identifier':
            name = self.text(function)
            if name not in scope.locals:
                if name in DYNAMIC_ATTRIBUTE_CALLS:
                    self._dynamic_attribute(node, name, arguments, scope)
                elif name in EVAL_CALLS:
                    self._dynamic_eval(node, arguments, scope)
                elif name == '__import__':
                    self.warn(node, "dynamic import via __import__()")
        elif function is not None and function.type == 'attribute':
            attribute = self.text(function.child_by_field_name('attribute'))
            if attribute == 'import_module':
                self.warn(node, "dynamic import via importlib.import_module()")

        if function is not None:
            self._reference_callee(function, scope, ReferenceKind.CALL)
        if arguments is not None:
            self._visit_arguments(arguments, scope)

    def _visit_arguments(self, arguments: Optional[Node], scope: Scope):
        if arguments is not None:
            self._visit_children(arguments, scope)

    def _visit_subscript(self, node: Node, scope: Scope):
        value = node.child_by_field_name('value')
        index = node.child_by_field_name('subscript')
        if value is not None and index is not None and index.type == 'string':
            literal = self._string_value(index)
            if literal and self._is_namespace_lookup(value):
                self.add_reference(literal, ReferenceKind.DYNAMIC, index, scope, receiver=OPAQUE)
        self._visit_children(node, scope)

    def _is_namespace_lookup(self, value: Node) -> bool:
        if value.type == 'call':
            function = value.child_by_field_name('function')
            return function is not None and self.text(function) in NAMESPACE_CALLS
        if value.type == 'attribute':
            return self.text(value.child_by_field_name('attribute')) == '__dict__'
        return False

    def _reference_callee(self, node: Optional[Node], scope: Scope, kind: ReferenceKind):
        """Record the reference made by a callee/decorator/attribute expression."""
        if node is None:
            return
        if node.type == 'identifier':
            name = self.text(node)
            if name not in scope.locals:
                self.add_reference(name, kind, node, scope)
            return
        if node.type == 'attribute':
            obj = node.child_by_field_name('object')
            attribute = node.child_by_field_name('attribute')
            receiver, receiver_type = self._receiver(obj, scope)
            self.add_reference(self.text(attribute), kind, attribute, scope,
                               receiver=receiver, receiver_type=receiver_type)
            self._visit(obj, scope)
            return
        self._visit(node, scope)

    def _receiver(self, obj: Node, scope: Scope) -> Tuple[str, Optional[str]]:
        """Describe the object of an attribute access.

        Returns:
            (receiver expression, inferred class name or None)
        """
        if obj.type == 'identifier':
            name = self.text(obj)
            inferred = scope.types.get(name)
            if name in SELF_NAMES:
                return name, None
            if name in scope.locals:
                return OPAQUE, inferred
            return name, inferred
        if obj.type == 'attribute':
            dotted = self._dotted(obj)
            if dotted is None:
                return OPAQUE, None
            head = dotted.split('.', 1)[0]
            if head in scope.locals and head not in SELF_NAMES:
                return OPAQUE, None
            return dotted, None
        if obj.type == 'call':
            function = obj.child_by_field_name('function')
            if function is not None and self.text(function) == 'super':
                return 'super()', None
            return OPAQUE, self._class_name_of(function)
        return OPAQUE, None

    def _dotted(self, node: Node) -> Optional[str]:
        if node.type == 'identifier':
            return self.text(node)
        if node.type == 'attribute':
            head = self._dotted(node.child_by_field_name('object'))
            if head is None:
                return None
            return f"{head}.{self.text(node.child_by_field_name('attribute'))}"
        return None

    def _class_name_of(self, node: Optional[Node]) -> Optional[str]:
        """Dotted name of node when it looks like a class (capitalized last segment)."""
        if node is None:
            return None
        if node.type == 'subscript':
            node = node.child_by_field_name('value')
            if node is None:
                return None
        dotted = self._dotted(node)
        if dotted and dotted.rsplit('.', 1)[-1][:1].isupper():
            return dotted
        return None

    # ---------------------------------------------------------- dynamic access

    def _positional(self, arguments: Optional[Node]) -> List[Node]:
        if arguments is None:
            return []
        return [c for c in arguments.named_children if c.type not in ('keyword_argument', 'comment')]

    def _dynamic_attribute(self, call: Node, function_name: str, arguments: Optional[Node], scope: Scope):
        positional = self._positional(arguments)
        if len(positional) < 2:
            return
        literal = self._string_value(positional[1]) if positional[1].type == 'string' else None
        if literal:
            self.add_reference(literal, ReferenceKind.DYNAMIC, positional[1], scope, receiver=OPAQUE)
        else:
            self.warn(call, f"computed attribute name in {function_name}()")

    def _dynamic_eval(self, call: Node, arguments: Optional[Node], scope: Scope):
        positional = self._positional(arguments)
        if not positional:
            return
        literal = self._string_value(positional[0]) if positional[0].type == 'string' else None
        if literal is None:
            self.warn(call, "evaluation of computed code")
            return
        for name in dict.fromkeys(_IDENTIFIER.findall(literal)):
            if not keyword.iskeyword(name):
                self.add_reference(name, ReferenceKind.DYNAMIC, positional[0], scope, receiver=OPAQUE)

    def _string_value(self, node: Node) -> Optional[str]:
        """Literal value of a plain string node, None for f-strings."""
        if any(child.type == 'interpolation' for child in node.named_children):
            return None
        parts = [self.text(child) for child in node.named_children if child.type == 'string_content']
        if parts:
            return ''.join(parts)
        match = _STRING_LITERAL.match(self.text(node))
        return match.group(2) if match else None

    # ---------------------------------------------------------- imports

    def _visit_import_statement(self, node: Node, scope: Scope):
        re_export = self.is_package_init and scope.definition is None
        for name_node in node.children_by_field_name('name'):
            if name_node.type == 'aliased_import':
                module = self.text(name_node.child_by_field_name('name'))
                local = self.text(name_node.child_by_field_name('alias'))
            else:
                module = self.text(name_node)
                local = module.split('.', 1)[0]
            self.add_binding(local, module, None, node, scope, re_export=re_export)

    def _visit_import_from_statement(self, node: Node, scope: Scope):
        module = re.sub(r'\s+', '', self.text(node.child_by_field_name('module_name')))
        re_export = self.is_package_init and scope.definition is None
        if any(child.type == 'wildcard_import' for child in node.children):
            self.add_binding('*', module, '*', node, scope, re_export=re_export)
            return
        for name_node in node.children_by_field_name('name'):
            if name_node.type == 'aliased_import':
                imported = self.text(name_node.child_by_field_name('name'))
                local = self.text(name_node.child_by_field_name('alias'))
            else:
                imported = self.text(name_node)
                local = imported
            self.add_binding(local, module, imported, node, scope, re_export=re_export)

    # ---------------------------------------------------------- conventions

    def _visit_if_statement(self, node: Node, scope: Scope):
        if scope.definition is None:
            condition = node.child_by_field_name('condition')
            normalized = re.sub(r'\s+', '', self.text(condition)) if condition is not None else ''
            if normalized in MAIN_GUARDS:
                self.entry_hints.append('script')
        self._visit_children(node, scope)

    # ---------------------------------------------------------- pre-scan

    def _collect_locals(self, body: Node):
        """Scan a block for locally bound names without entering nested scopes.

        Returns:
            (assigned names, other bound names, nested def/class names,
             global/nonlocal names, inferred types)
        """
        assigned: Set[str] = set()
        bound: Set[str] = set()
        nested: Set[str] = set()
        global_names: Set[str] = set()
        types: Dict[str, str] = {}

        stack = list(reversed(body.named_children))
        while stack:
            node = stack.pop()
            node_type = node.type
            if node_type in SCOPE_BOUNDARIES:
                target = node.child_by_field_name('definition') if node_type == 'decorated_definition' else node
                if target is not None and target.type in ('function_definition', 'class_definition'):
                    nested.add(self.text(target.child_by_field_name('name')))
                continue
            if node_type == 'assignment':
                left = node.child_by_field_name('left')
                right = node.child_by_field_name('right')
                names = self._target_names(left) if left is not None else []
                assigned.update(names)
                if len(names) == 1 and right is not None and right.type == 'call':
                    inferred = self._class_name_of(right.child_by_field_name('function'))
                    if inferred:
                        types[names[0]] = inferred
                annotation = node.child_by_field_name('type')
                if len(names) == 1 and annotation is not None and annotation.named_children:
                    inferred = self._class_name_of(annotation.named_children[0])
                    if inferred:
                        types[names[0]] = inferred
            elif node_type in ('for_statement', 'for_in_clause'):
                left = node.child_by_field_name('left')
                if left is not None:
                    bound.update(self._target_names(left))
            elif node_type == 'as_pattern':
                for child in node.named_children:
                    if child.type == 'as_pattern_target':
                        bound.update(self._target_names(child))
            elif node_type == 'except_clause':
                after_as = False
                for child in node.children:
                    if child.type == 'as':
                        after_as = True
                    elif after_as and child.type == 'identifier':
                        bound.add(self.text(child))
                        after_as = False
            elif node_type == 'named_expression':
                name = node.child_by_field_name('name')
                if name is not None:
                    bound.add(self.text(name))
            elif node_type in ('global_statement', 'nonlocal_statement'):
                global_names.update(self.text(c) for c in node.named_children if c.type == 'identifier')
            stack.extend(reversed(node.named_children))

        return assigned, bound, nested, global_names, types

    def _target_names(self, target: Optional[Node]) -> List[str]:
        if target is None:
            return []
        if target.type == 'identifier':
            return [self.text(target)]
        if target.type in TARGET_CONTAINERS or target.type in ('dictionary_splat_pattern',):
            names = []
            for child in target.named_children:
                names.extend(self._target_names(child))
            return names
        return []

    # ---------------------------------------------------------- exports

    def finish(self):
        if self._all_names is not None:
            for name in self._all_names:
                self.add_export(name, name)
            exported_locals = set(self._all_names)
        else:
            for definition in self.definitions:
                if definition.scope is None and definition.visibility == Visibility.PUBLIC:
                    self.add_export(definition.name, definition.name)
            exported_locals = set()
            if self.is_package_init:
                for binding in self.bindings:
                    if binding.re_export and not binding.is_wildcard:
                        self.add_export(binding.local_name, binding.local_name)

        self.bindings = [
            replace(b, re_export=True)
            if b.source is None and not b.is_wildcard and b.local_name in exported_locals else b
            for b in self.bindings
        ]
        for binding in self.bindings:
            if binding.re_export and not binding.is_wildcard:
                self.references.append(Reference(
                    name=binding.local_name,
                    kind=ReferenceKind.RE_EXPORT,
                    file_path=self.path,
                    line=binding.line,
                    column=0,
                ))
