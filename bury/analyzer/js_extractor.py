"""JavaScript / TypeScript symbol extraction.

Handles ES modules and CommonJS: import/require bindings, export
declarations and lists, default exports, `export ... from` re-exports and
`module.exports` assignments. Test suites (describe/it/test) and top-level
script calls are recorded as entry hints.
"""
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple
from tree_sitter import Node

from .extractor import OPAQUE, Scope, SymbolExtractor
from .model import DefinitionKind, Language, Reference, ReferenceKind, Visibility


TEST_CALLS = {'describe', 'it', 'test', 'suite', 'context', 'beforeEach', 'afterEach', 'beforeAll', 'afterAll'}
FUNCTION_VALUES = {'arrow_function', 'function_expression', 'function', 'generator_function'}
FUNCTION_DECLARATIONS = {'function_declaration', 'generator_function_declaration'}
CLASS_DECLARATIONS = {'class_declaration', 'abstract_class_declaration'}
NESTED_SCOPES = FUNCTION_VALUES | FUNCTION_DECLARATIONS | CLASS_DECLARATIONS | {'class', 'method_definition'}
FIELD_DEFINITIONS = {'field_definition', 'public_field_definition'}


def strip_quotes(text: str) -> str:
    return text.strip('"\'`')


class JavaScriptExtractor(SymbolExtractor):
    """Extract definitions, references and bindings from JS/TS/TSX sources."""

    def __init__(self, path: str, source: bytes, language: Language = Language.JAVASCRIPT):
        super().__init__(path, source)
        self.language = language
        self._script_calls: List[str] = []

    def walk(self, root: Node):
        bound, _nested, types = self._collect_locals(root, module_level=True)
        module_scope = Scope(locals=frozenset(bound), types=types)
        for child in root.named_children:
            if child.type == 'expression_statement':
                self._note_top_level_call(child)
            self._visit(child, module_scope)

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

    def _visit_function_declaration(self, node: Node, scope: Scope):
        name = self.text(node.child_by_field_name('name'))
        definition = self.add_definition(node, name, DefinitionKind.FUNCTION, scope, self._visibility(name))
        self._visit_function_body(node, scope.child(definition), scope)

    _visit_generator_function_declaration = _visit_function_declaration

    def _visit_function_body(self, node: Node, body_scope: Scope, outer: Scope):
        """Bind parameters and locals of any function-like node, then walk its body."""
        param_names, param_types = self._visit_parameters(node, outer)
        return_type = node.child_by_field_name('return_type')
        if return_type is not None:
            self._visit(return_type, outer.as_type())
        body = node.child_by_field_name('body')
        if body is None:
            return
        local_names, nested, types = self._collect_locals(body)
        local_names = (local_names | param_names) - nested
        merged_types = dict(param_types)
        merged_types.update(types)
        inner = replace(
            body_scope,
            locals=body_scope.locals | frozenset(local_names),
            types={**{k: v for k, v in body_scope.types.items() if k not in local_names}, **merged_types},
        )
        if body.type == 'statement_block':
            self._visit_children(body, inner)
        else:
            self._visit(body, inner)

    def _visit_arrow_function(self, node: Node, scope: Scope):
        # anonymous: references belong to the enclosing definition
        self._visit_function_body(node, scope, scope)

    _visit_function_expression = _visit_arrow_function
    _visit_function = _visit_arrow_function
    _visit_generator_function = _visit_arrow_function

    def _visit_class_declaration(self, node: Node, scope: Scope):
        decorators = self._visit_decorators(node.children_by_field_name('decorator'), scope)
        name_node = node.child_by_field_name('name')
        name = self.text(name_node) if name_node is not None else 'default'
        bases = self._visit_heritage(node, scope)
        definition = self.add_definition(node, name, DefinitionKind.CLASS, scope, self._visibility(name),
                                         base_classes=bases, decorators=decorators)
        body = node.child_by_field_name('body')
        if body is not None:
            self._visit_class_body(body, scope.child(definition, in_class_body=True))
        return definition

    _visit_abstract_class_declaration = _visit_class_declaration

    def _visit_class(self, node: Node, scope: Scope):
        # class expression not bound to a name: walk its members in place
        self._visit_heritage(node, scope)
        body = node.child_by_field_name('body')
        if body is not None:
            self._visit_children(body, scope)

    def _visit_heritage(self, node: Node, scope: Scope) -> List[str]:
        bases = []
        for child in node.named_children:
            if child.type != 'class_heritage':
                continue
            clauses = [c for c in child.named_children if c.type in ('extends_clause', 'implements_clause')]
            expressions = []
            if clauses:
                for clause in clauses:
                    expressions.extend(c for c in clause.named_children if c.type != 'type_arguments')
            else:
                expressions = list(child.named_children)
            for expression in expressions:
                if expression.type in ('identifier', 'member_expression', 'type_identifier',
                                       'nested_type_identifier'):
                    bases.append(self.text(expression))
                elif expression.type == 'generic_type':
                    bases.append(self.text(expression.named_children[0]))
                self._visit(expression, scope)
        return bases

    def _visit_class_body(self, body: Node, scope: Scope):
        pending: List[str] = []
        for member in body.named_children:
            if member.type == 'decorator':
                pending.extend(self._visit_decorators([member], scope))
                continue
            if member.type == 'method_definition':
                self._visit_method(member, scope, pending)
            elif member.type in FIELD_DEFINITIONS:
                self._visit_field(member, scope, pending)
            else:
                self._visit(member, scope)
            pending = []

    def _visit_method(self, node: Node, scope: Scope, decorators=()):
        decorators = list(decorators) + self._visit_decorators(node.children_by_field_name('decorator'), scope)
        name = self.text(node.child_by_field_name('name'))
        definition = self.add_definition(node, name, DefinitionKind.METHOD, scope,
                                         self._member_visibility(node, name), decorators=decorators)
        self._visit_function_body(node, scope.child(definition), scope)

    def _visit_method_definition(self, node: Node, scope: Scope):
        # object literal method: no definition of its own
        self._visit_function_body(node, scope, scope)

    def _visit_field(self, node: Node, scope: Scope, decorators=()):
        name_node = node.child_by_field_name('name')
        if name_node is None:
            name_node = node.child_by_field_name('property')
        value = node.child_by_field_name('value')
        annotation = node.child_by_field_name('type')
        if annotation is not None:
            self._visit(annotation, scope.as_type())
        if name_node is not None and value is not None and value.type in FUNCTION_VALUES:
            name = self.text(name_node)
            definition = self.add_definition(node, name, DefinitionKind.METHOD, scope,
                                             self._member_visibility(node, name), decorators=decorators)
            self._visit_function_body(value, scope.child(definition), scope)
        elif value is not None:
            self._visit(value, scope)

    def _visit_interface_declaration(self, node: Node, scope: Scope):
        name = self.text(node.child_by_field_name('name'))
        bases = []
        for child in node.named_children:
            if child.type == 'extends_type_clause':
                bases.extend(self.text(c) for c in child.named_children)
                self._visit(child, scope.as_type())
        definition = self.add_definition(node, name, DefinitionKind.INTERFACE, scope,
                                         self._visibility(name), base_classes=bases)
        body = node.child_by_field_name('body')
        if body is not None:
            self._visit(body, scope.child(definition).as_type())

    def _visit_type_alias_declaration(self, node: Node, scope: Scope):
        name = self.text(node.child_by_field_name('name'))
        definition = self.add_definition(node, name, DefinitionKind.INTERFACE, scope, self._visibility(name))
        value = node.child_by_field_name('value')
        if value is not None:
            self._visit(value, scope.child(definition).as_type())

    def _visit_enum_declaration(self, node: Node, scope: Scope):
        name = self.text(node.child_by_field_name('name'))
        definition = self.add_definition(node, name, DefinitionKind.CLASS, scope, self._visibility(name))
        body = node.child_by_field_name('body')
        if body is not None:
            for member in body.named_children:
                if member.type == 'enum_assignment':
                    value = member.child_by_field_name('value')
                    if value is not None:
                        self._visit(value, scope.child(definition))

    def _visit_function_signature(self, node: Node, scope: Scope):
        self._visit_parameters(node, scope)
        return_type = node.child_by_field_name('return_type')
        if return_type is not None:
            self._visit(return_type, scope.as_type())

    _visit_method_signature = _visit_function_signature
    _visit_abstract_method_signature = _visit_function_signature

    def _visit_lexical_declaration(self, node: Node, scope: Scope):
        for declarator in node.named_children:
            if declarator.type == 'variable_declarator':
                self._visit_declarator(declarator, scope)
            else:
                self._visit(declarator, scope)

    _visit_variable_declaration = _visit_lexical_declaration

    def _visit_declarator(self, node: Node, scope: Scope):
        name_node = node.child_by_field_name('name')
        value = node.child_by_field_name('value')
        annotation = node.child_by_field_name('type')
        if annotation is not None:
            self._visit(annotation, scope.as_type())

        module = self._require_target(value)
        if module is not None and name_node is not None:
            self._bind_require(name_node, module, node, scope)
            return

        if name_node is None or name_node.type != 'identifier':
            if name_node is not None:
                self._visit_pattern_defaults(name_node, scope)
            if value is not None:
                self._visit(value, scope)
            return

        name = self.text(name_node)
        is_function = value is not None and value.type in FUNCTION_VALUES
        if scope.definition is None or is_function:
            if is_function:
                kind = DefinitionKind.FUNCTION
            elif value is not None and value.type == 'class':
                kind = DefinitionKind.CLASS
            else:
                kind = DefinitionKind.VARIABLE
            definition = self.add_definition(node, name, kind, scope, self._visibility(name))
            if is_function:
                self._visit_function_body(value, scope.child(definition), scope)
                return
            if kind == DefinitionKind.CLASS:
                self._visit_heritage(value, scope)
                body = value.child_by_field_name('body')
                if body is not None:
                    self._visit_class_body(body, scope.child(definition, in_class_body=True))
                return
        if value is not None:
            self._visit(value, scope)

    def _visit_pattern_defaults(self, pattern: Node, scope: Scope):
        """Walk default values inside destructuring patterns."""
        for child in pattern.named_children:
            if child.type in ('assignment_pattern', 'object_assignment_pattern'):
                right = child.child_by_field_name('right')
                if right is not None:
                    self._visit(right, scope)
            elif child.type in ('pair_pattern', 'object_pattern', 'array_pattern'):
                self._visit_pattern_defaults(child, scope)

    def _visit_parameters(self, node: Node, scope: Scope) -> Tuple[Set[str], Dict[str, str]]:
        names: Set[str] = set()
        types: Dict[str, str] = {}
        single = node.child_by_field_name('parameter')
        if single is not None:
            names.update(self._pattern_names(single))
        params = node.child_by_field_name('parameters')
        if params is None:
            return names, types
        for param in params.named_children:
            if param.type in ('required_parameter', 'optional_parameter'):
                pattern = param.child_by_field_name('pattern')
                pattern_names = self._pattern_names(pattern) if pattern is not None else []
                names.update(pattern_names)
                annotation = param.child_by_field_name('type')
                if annotation is not None:
                    self._visit(annotation, scope.as_type())
                    inferred = self._type_name(annotation)
                    if inferred and len(pattern_names) == 1:
                        types[pattern_names[0]] = inferred
                value = param.child_by_field_name('value')
                if value is not None:
                    self._visit(value, scope)
            elif param.type == 'assignment_pattern':
                names.update(self._pattern_names(param.child_by_field_name('left')))
                right = param.child_by_field_name('right')
                if right is not None:
                    self._visit(right, scope)
            else:
                names.update(self._pattern_names(param))
                if param.type in ('object_pattern', 'array_pattern'):
                    self._visit_pattern_defaults(param, scope)
        return names, types

    def _visit_decorators(self, decorators, scope: Scope) -> List[str]:
        names = []
        for decorator in decorators:
            expression = decorator.named_children[0] if decorator.named_children else None
            if expression is None:
                continue
            if expression.type == 'call_expression':
                callee = expression.child_by_field_name('function')
                names.append(self.text(callee))
                self._reference_callee(callee, scope, ReferenceKind.DECORATOR)
                arguments = expression.child_by_field_name('arguments')
                if arguments is not None:
                    self._visit(arguments, scope)
            else:
                names.append(self.text(expression))
                self._reference_callee(expression, scope, ReferenceKind.DECORATOR)
        return names

    def _visit_decorator(self, node: Node, scope: Scope):
        self._visit_decorators([node], scope)

    # ---------------------------------------------------------- references

    def _visit_identifier(self, node: Node, scope: Scope):
        name = self.text(node)
        if name not in scope.locals:
            self.add_reference(name, ReferenceKind.NAME, node, scope)

    _visit_shorthand_property_identifier = _visit_identifier

    def _visit_type_identifier(self, node: Node, scope: Scope):
        name = self.text(node)
        if name not in scope.locals:
            self.add_reference(name, ReferenceKind.TYPE, node, scope)

    def _visit_nested_type_identifier(self, node: Node, scope: Scope):
        parts = self.text(node).rsplit('.', 1)
        if len(parts) == 2:
            self.add_reference(parts[1], ReferenceKind.TYPE, node, scope, receiver=parts[0])
            head = parts[0].split('.', 1)[0]
            if head not in scope.locals:
                self.add_reference(head, ReferenceKind.NAME, node, scope)

    def _visit_type_parameters(self, node: Node, scope: Scope):
        pass

    def _visit_member_expression(self, node: Node, scope: Scope):
        self._reference_callee(node, scope, ReferenceKind.ATTRIBUTE)

    def _visit_subscript_expression(self, node: Node, scope: Scope):
        index = node.child_by_field_name('index')
        if index is not None and index.type == 'string':
            literal = strip_quotes(self.text(index))
            if literal.isidentifier():
                self.add_reference(literal, ReferenceKind.DYNAMIC, index, scope, receiver=OPAQUE)
        self._visit_children(node, scope)

    def _visit_call_expression(self, node: Node, scope: Scope):
        function = node.child_by_field_name('function')
        arguments = node.child_by_field_name('arguments')
        if function is not None and function.type == 'import':
            self.warn(node, "dynamic import()")
        elif function is not None:
            module = self._require_target(node)
            if module is not None:
                self.add_binding('', module, None, node, scope)
            else:
                self._reference_callee(function, scope, ReferenceKind.CALL)
        if arguments is not None:
            self._visit(arguments, scope)

    def _visit_new_expression(self, node: Node, scope: Scope):
        constructor = node.child_by_field_name('constructor')
        self._reference_callee(constructor, scope, ReferenceKind.CALL)
        arguments = node.child_by_field_name('arguments')
        if arguments is not None:
            self._visit(arguments, scope)

    def _visit_assignment_expression(self, node: Node, scope: Scope):
        left = node.child_by_field_name('left')
        right = node.child_by_field_name('right')
        if left is not None:
            target = self.text(left).replace(' ', '')
            if scope.definition is None:
                if target == 'module.exports':
                    self._record_commonjs_object(right, scope)
                    right = None
                elif self._is_commonjs_member(target) and right is not None and right.type == 'identifier':
                    self.add_export(target.rsplit('.', 1)[1], self.text(right))
                    right = None
            if left.type == 'member_expression':
                self._visit(left.child_by_field_name('object'), scope)
            elif left.type == 'subscript_expression':
                self._visit_children(left, scope)
        if right is not None:
            self._visit(right, scope)

    @staticmethod
    def _is_commonjs_member(target: str) -> bool:
        parts = target.split('.')
        return (len(parts) == 2 and parts[0] == 'exports') or \
            (len(parts) == 3 and parts[:2] == ['module', 'exports'])

    def _record_commonjs_object(self, value: Optional[Node], scope: Scope):
        """Record `module.exports = ...` and walk whatever is not a plain export."""
        if value is None:
            return
        if value.type == 'identifier':
            self.add_export('default', self.text(value))
            return
        if value.type != 'object':
            self._visit(value, scope)
            return
        for entry in value.named_children:
            if entry.type == 'shorthand_property_identifier':
                name = self.text(entry)
                self.add_export(name, name)
                continue
            if entry.type == 'pair':
                key = entry.child_by_field_name('key')
                target = entry.child_by_field_name('value')
                if key is not None and target is not None and target.type == 'identifier':
                    self.add_export(strip_quotes(self.text(key)), self.text(target))
                    continue
            self._visit(entry, scope)

    def _visit_jsx_opening_element(self, node: Node, scope: Scope):
        name = node.child_by_field_name('name')
        if name is not None:
            if name.type == 'identifier':
                if self.text(name)[:1].isupper():
                    self._visit_identifier(name, scope)
            else:
                self._visit(name, scope)
        for child in node.named_children:
            if name is not None and child.start_byte == name.start_byte and child.type == name.type:
                continue
            self._visit(child, scope)

    _visit_jsx_self_closing_element = _visit_jsx_opening_element

    def _visit_jsx_closing_element(self, node: Node, scope: Scope):
        pass

    def _visit_jsx_attribute(self, node: Node, scope: Scope):
        for child in node.named_children:
            if child.type != 'property_identifier':
                self._visit(child, scope)

    def _visit_catch_clause(self, node: Node, scope: Scope):
        body = node.child_by_field_name('body')
        parameter = node.child_by_field_name('parameter')
        if body is not None:
            names = self._pattern_names(parameter) if parameter is not None else []
            self._visit_children(body, replace(scope, locals=scope.locals | frozenset(names)))

    def _visit_for_in_statement(self, node: Node, scope: Scope):
        for field_name in ('right', 'body'):
            child = node.child_by_field_name(field_name)
            if child is not None:
                self._visit(child, scope)

    def _visit_pair(self, node: Node, scope: Scope):
        key = node.child_by_field_name('key')
        if key is not None and key.type == 'computed_property_name':
            self._visit(key, scope)
        value = node.child_by_field_name('value')
        if value is not None:
            self._visit(value, scope)

    def _visit_labeled_statement(self, node: Node, scope: Scope):
        body = node.child_by_field_name('body')
        if body is not None:
            self._visit(body, scope)

    def _reference_callee(self, node: Optional[Node], scope: Scope, kind: ReferenceKind):
        if node is None:
            return
        if node.type == 'identifier':
            name = self.text(node)
            if name not in scope.locals:
                self.add_reference(name, kind, node, scope)
            return
        if node.type == 'member_expression':
            obj = node.child_by_field_name('object')
            prop = node.child_by_field_name('property')
            receiver, receiver_type = self._receiver(obj, scope)
            self.add_reference(self.text(prop), kind, prop, scope,
                               receiver=receiver, receiver_type=receiver_type)
            self._visit(obj, scope)
            return
        self._visit(node, scope)

    def _receiver(self, obj: Optional[Node], scope: Scope) -> Tuple[str, Optional[str]]:
        if obj is None:
            return OPAQUE, None
        if obj.type == 'this':
            return 'this', None
        if obj.type == 'super':
            return 'super()', None
        if obj.type == 'identifier':
            name = self.text(obj)
            inferred = scope.types.get(name)
            if name in scope.locals:
                return OPAQUE, inferred
            return name, inferred
        if obj.type == 'member_expression':
            dotted = self._dotted(obj)
            if dotted is None:
                return OPAQUE, None
            head = dotted.split('.', 1)[0]
            if head in scope.locals:
                return OPAQUE, None
            return dotted, None
        if obj.type == 'new_expression':
            constructor = obj.child_by_field_name('constructor')
            return OPAQUE, self._dotted(constructor) if constructor is not None else None
        if obj.type == 'parenthesized_expression' and obj.named_children:
            return self._receiver(obj.named_children[0], scope)
        return OPAQUE, None

    def _dotted(self, node: Node) -> Optional[str]:
        if node.type in ('identifier', 'this'):
            return self.text(node)
        if node.type == 'member_expression':
            head = self._dotted(node.child_by_field_name('object'))
            if head is None:
                return None
            return f"{head}.{self.text(node.child_by_field_name('property'))}"
        return None

    def _type_name(self, annotation: Node) -> Optional[str]:
        node = annotation.named_children[0] if annotation.type == 'type_annotation' and annotation.named_children else annotation
        if node.type == 'generic_type' and node.named_children:
            node = node.named_children[0]
        if node.type in ('type_identifier', 'nested_type_identifier'):
            return self.text(node)
        return None

    # ---------------------------------------------------------- modules

    def _require_target(self, node: Optional[Node]) -> Optional[str]:
        """Module specifier of a require('x') call, else None."""
        if node is None or node.type != 'call_expression':
            return None
        function = node.child_by_field_name('function')
        arguments = node.child_by_field_name('arguments')
        if function is None or self.text(function) != 'require' or arguments is None:
            return None
        if arguments.named_child_count == 0 or arguments.named_children[0].type != 'string':
            return None
        return strip_quotes(self.text(arguments.named_children[0]))

    def _bind_require(self, name_node: Node, module: str, node: Node, scope: Scope):
        if name_node.type == 'identifier':
            self.add_binding(self.text(name_node), module, None, node, scope)
            return
        if name_node.type == 'object_pattern':
            for child in name_node.named_children:
                if child.type == 'shorthand_property_identifier_pattern':
                    name = self.text(child)
                    self.add_binding(name, module, name, node, scope)
                elif child.type == 'pair_pattern':
                    key = child.child_by_field_name('key')
                    value = child.child_by_field_name('value')
                    if key is not None and value is not None and value.type == 'identifier':
                        self.add_binding(self.text(value), module, strip_quotes(self.text(key)), node, scope)
            return
        self.add_binding('', module, None, node, scope)

    def _visit_import_statement(self, node: Node, scope: Scope):
        source = node.child_by_field_name('source')
        if source is None:
            return
        module = strip_quotes(self.text(source))
        clause = next((c for c in node.named_children if c.type == 'import_clause'), None)
        require_clause = next((c for c in node.named_children if c.type == 'import_require_clause'), None)
        if require_clause is not None:
            name = next((c for c in require_clause.named_children if c.type == 'identifier'), None)
            if name is not None:
                self.add_binding(self.text(name), module, None, node, scope)
            return
        if clause is None:
            self.add_binding('', module, None, node, scope)
            return
        for child in clause.named_children:
            if child.type == 'identifier':
                self.add_binding(self.text(child), module, 'default', node, scope)
            elif child.type == 'namespace_import':
                for ns_child in child.named_children:
                    if ns_child.type == 'identifier':
                        self.add_binding(self.text(ns_child), module, None, node, scope)
            elif child.type == 'named_imports':
                for specifier in child.named_children:
                    if specifier.type != 'import_specifier':
                        continue
                    original = strip_quotes(self.text(specifier.child_by_field_name('name')))
                    alias = specifier.child_by_field_name('alias')
                    local = self.text(alias) if alias is not None else original
                    self.add_binding(local, module, original, node, scope)

    def _visit_export_statement(self, node: Node, scope: Scope):
        source = node.child_by_field_name('source')
        is_default = any(child.type == 'default' for child in node.children)

        if source is not None:
            module = strip_quotes(self.text(source))
            clause = next((c for c in node.named_children if c.type == 'export_clause'), None)
            namespace = next((c for c in node.named_children if c.type == 'namespace_export'), None)
            if clause is not None:
                for specifier in clause.named_children:
                    if specifier.type != 'export_specifier':
                        continue
                    original = strip_quotes(self.text(specifier.child_by_field_name('name')))
                    alias = specifier.child_by_field_name('alias')
                    exported = strip_quotes(self.text(alias)) if alias is not None else original
                    self.add_binding(exported, module, original, node, scope, re_export=True)
                    self.add_export(exported, exported)
            elif namespace is not None:
                ident = next((c for c in namespace.named_children if c.type in ('identifier', 'string')), None)
                if ident is not None:
                    exported = strip_quotes(self.text(ident))
                    self.add_binding(exported, module, None, node, scope, re_export=True)
                    self.add_export(exported, exported)
            else:
                self.add_binding('*', module, '*', node, scope, re_export=True)
            return

        declaration = node.child_by_field_name('declaration')
        if declaration is not None:
            before = len(self.definitions)
            self._visit(declaration, scope)
            declared = [d for d in self.definitions[before:] if d.scope is None]
            for definition in declared:
                self.add_export('default' if is_default else definition.name, definition.name)
            return

        clause = next((c for c in node.named_children if c.type == 'export_clause'), None)
        if clause is not None:
            for specifier in clause.named_children:
                if specifier.type != 'export_specifier':
                    continue
                local = self.text(specifier.child_by_field_name('name'))
                alias = specifier.child_by_field_name('alias')
                self.add_export(strip_quotes(self.text(alias)) if alias is not None else local, local)
            return

        value = node.child_by_field_name('value')
        if is_default and value is not None:
            if value.type == 'identifier':
                self.add_export('default', self.text(value))
            elif value.type in FUNCTION_VALUES or value.type == 'class':
                kind = DefinitionKind.CLASS if value.type == 'class' else DefinitionKind.FUNCTION
                definition = self.add_definition(value, 'default', kind, scope)
                self.add_export('default', 'default')
                if kind == DefinitionKind.FUNCTION:
                    self._visit_function_body(value, scope.child(definition), scope)
                    return
                body = value.child_by_field_name('body')
                self._visit_heritage(value, scope)
                if body is not None:
                    self._visit_class_body(body, scope.child(definition, in_class_body=True))
                return
            self._visit(value, scope)

    # ---------------------------------------------------------- conventions

    def _note_top_level_call(self, statement: Node):
        expression = statement.named_children[0] if statement.named_children else None
        while expression is not None and expression.type in ('await_expression', 'parenthesized_expression'):
            expression = expression.named_children[0] if expression.named_children else None
        if expression is None or expression.type != 'call_expression':
            return
        callee = expression.child_by_field_name('function')
        while callee is not None and callee.type in ('member_expression', 'call_expression', 'parenthesized_expression'):
            if callee.type == 'member_expression':
                callee = callee.child_by_field_name('object')
            elif callee.type == 'call_expression':
                callee = callee.child_by_field_name('function')
            else:
                inner = callee.named_children[0] if callee.named_children else None
                if inner is not None and inner.type in FUNCTION_VALUES:
                    self.entry_hints.append('script')
                    return
                callee = inner
        if callee is None or callee.type != 'identifier':
            return
        name = self.text(callee)
        if name in TEST_CALLS:
            self.entry_hints.append('test-suite')
        else:
            self._script_calls.append(name)

    # ---------------------------------------------------------- pre-scan

    def _collect_locals(self, body: Node, module_level: bool = False):
        """Names bound in a block, excluding nested functions and classes.

        At module level only destructured names and loop/catch targets count:
        plain declarators there are definitions.

        Returns:
            (bound names, nested definition names, inferred types)
        """
        bound: Set[str] = set()
        nested: Set[str] = set()
        types: Dict[str, str] = {}
        stack = list(reversed(body.named_children))
        while stack:
            node = stack.pop()
            if node.type in FUNCTION_DECLARATIONS or node.type in CLASS_DECLARATIONS:
                name = node.child_by_field_name('name')
                if name is not None:
                    nested.add(self.text(name))
                continue
            if node.type in NESTED_SCOPES:
                continue
            if node.type == 'variable_declarator':
                name = node.child_by_field_name('name')
                value = node.child_by_field_name('value')
                if name is not None and name.type == 'identifier':
                    if value is not None and value.type in FUNCTION_VALUES:
                        nested.add(self.text(name))
                    elif not module_level:
                        bound.add(self.text(name))
                    if value is not None and value.type == 'new_expression':
                        constructor = value.child_by_field_name('constructor')
                        dotted = self._dotted(constructor) if constructor is not None else None
                        if dotted:
                            types[self.text(name)] = dotted
                    annotation = node.child_by_field_name('type')
                    inferred = self._type_name(annotation) if annotation is not None else None
                    if inferred:
                        types[self.text(name)] = inferred
                elif name is not None and self._require_target(value) is None:
                    bound.update(self._pattern_names(name))
            elif node.type == 'for_in_statement':
                left = node.child_by_field_name('left')
                if left is not None:
                    bound.update(self._pattern_names(left))
            elif node.type == 'catch_clause':
                parameter = node.child_by_field_name('parameter')
                if parameter is not None:
                    bound.update(self._pattern_names(parameter))
            stack.extend(reversed(node.named_children))
        return bound, nested, types

    def _pattern_names(self, node: Optional[Node]) -> List[str]:
        if node is None:
            return []
        if node.type in ('identifier', 'shorthand_property_identifier_pattern'):
            return [self.text(node)]
        if node.type in ('assignment_pattern', 'object_assignment_pattern'):
            return self._pattern_names(node.child_by_field_name('left'))
        if node.type == 'pair_pattern':
            return self._pattern_names(node.child_by_field_name('value'))
        if node.type in ('object_pattern', 'array_pattern', 'rest_pattern',
                         'lexical_declaration', 'variable_declaration'):
            names = []
            for child in node.named_children:
                names.extend(self._pattern_names(child))
            return names
        if node.type == 'variable_declarator':
            return self._pattern_names(node.child_by_field_name('name'))
        return []

    # ---------------------------------------------------------- visibility / exports

    def _visibility(self, name: str) -> Visibility:
        return Visibility.PRIVATE

    def _member_visibility(self, node: Node, name: str) -> Visibility:
        if name.startswith('#'):
            return Visibility.PRIVATE
        for child in node.named_children:
            if child.type == 'accessibility_modifier' and self.text(child) in ('private', 'protected'):
                return Visibility.PRIVATE
        return Visibility.PUBLIC

    def finish(self):
        top_level = self.top_level_names()
        if any(name in top_level for name in self._script_calls):
            self.entry_hints.append('script')

        binding_names = {b.local_name for b in self.bindings if b.local_name and not b.is_wildcard}
        re_exported = {b.local_name for b in self.bindings if b.re_export and not b.is_wildcard}
        for _exported, local in dict.fromkeys(self.exports):
            if local not in top_level and local in binding_names:
                re_exported.add(local)
        self.bindings = [
            replace(b, re_export=True) if b.local_name in re_exported and b.source is None else b
            for b in self.bindings
        ]
        for binding in self.bindings:
            if binding.local_name in re_exported and binding.source is None:
                self.references.append(Reference(
                    name=binding.local_name,
                    kind=ReferenceKind.RE_EXPORT,
                    file_path=self.path,
                    line=binding.line,
                    column=0,
                ))
