"""Module bundling.

Inlines every ``import`` of a script so the rest of the pipeline sees a
single program. Module source comes from a caller supplied resolver, is
preprocessed with the same build id, and its top-level bindings are renamed
wherever they could clash with names used elsewhere. Imports then become
plain references to the (possibly renamed) exported bindings.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import structlog

from .ast_nodes import (
    Node, Program, Identifier, VariableDeclaration, VariableDeclarator,
    FunctionDeclaration, ClassDeclaration, ImportDeclaration,
    ImportDefaultSpecifier, ImportNamespaceSpecifier, ExportNamedDeclaration,
    ExportDefaultDeclaration, ExportAllDeclaration,
    StringLiteral,
)
from .errors import CompileError, Warning
from .options import ModuleResolver
from .scope import ScopeAnalysis, analyze, pattern_identifiers

logger = structlog.get_logger(__name__)

DEFAULT_EXPORT_NAME = "_default"


class BundleError(CompileError):
    """A module could not be found or linked."""

    def __init__(self, message: str):
        super().__init__(message, "BundleError")


def _module_name(node: Node) -> str:
    return node.value if isinstance(node, StringLiteral) else node.name


@dataclass
class Module:
    """One parsed unit taking part in a bundle."""

    specifier: str
    program: Program
    analysis: Optional[ScopeAnalysis] = None
    # exported name -> identifier whose final name is the local binding
    exports: Dict[str, Identifier] = field(default_factory=dict)
    # (import declaration, module it resolved to)
    imports: List[tuple] = field(default_factory=list)
    # (export name, source module, imported name or "*")
    reexports: List[tuple] = field(default_factory=list)


class Bundler:
    """Links an entry program with the modules it imports."""

    def __init__(self, unique_id: str, resolve_module: Optional[ModuleResolver] = None):
        self.unique_id = unique_id
        self.resolve_module = resolve_module
        self.modules: Dict[str, Module] = {}
        self.order: List[Module] = []  # dependencies before dependents
        self.warnings: List[Warning] = []
        self._loading: Set[str] = set()

    def bundle(self, program: Program, importer: str = "<script>") -> Program:
        if not any(isinstance(stmt, (ImportDeclaration, ExportAllDeclaration)) or (
            isinstance(stmt, ExportNamedDeclaration) and stmt.source is not None
        ) for stmt in program.body):
            return program

        entry = Module(importer, program)
        self._link(entry)
        self._rename_top_level(entry)
        for module in self.order + [entry]:
            self._bind_imports(module)

        body: List[Node] = []
        for module in self.order + [entry]:
            body.extend(stmt for stmt in module.program.body if not isinstance(stmt, ImportDeclaration))
        program.body = body
        logger.debug("bundle.complete", modules=[module.specifier for module in self.order])
        return program

    # ---- loading ----

    def _load(self, specifier: str, importer: str, line: int) -> Module:
        if specifier in self.modules:
            return self.modules[specifier]
        if specifier in self._loading:
            raise BundleError(f'circular import of "{specifier}" from "{importer}"')
        source = self.resolve_module(specifier, importer) if self.resolve_module else None
        if source is None:
            where = f" (line {line})" if line else ""
            raise BundleError(f'cannot resolve module "{specifier}" imported from "{importer}"{where}')

        from .preprocess import preprocess

        self._loading.add(specifier)
        result = preprocess(source, self.unique_id)
        self.warnings.extend(
            Warning(f"{specifier}: {warning.message}", warning.line) for warning in result.warnings
        )
        module = Module(specifier, result.program)
        self._link(module)
        self._collect_exports(module)
        self._loading.discard(specifier)
        self.modules[specifier] = module
        self.order.append(module)
        return module

    def _link(self, module: Module) -> None:
        """Load every module this one imports or re-exports from.

        Import declarations stay in the body until the bundle is assembled
        so that scope analysis sees the bindings they declare.
        """
        body = []
        for stmt in module.program.body:
            if isinstance(stmt, ImportDeclaration):
                target = self._load(stmt.source.value, module.specifier, stmt.line)
                for specifier in stmt.specifiers:
                    if isinstance(specifier, ImportNamespaceSpecifier):
                        raise BundleError(
                            f'namespace import of "{stmt.source.value}" is not supported, import names individually'
                        )
                module.imports.append((stmt, target))
            elif isinstance(stmt, ExportAllDeclaration):
                if stmt.exported is not None:
                    raise BundleError(f'namespace re-export of "{stmt.source.value}" is not supported')
                target = self._load(stmt.source.value, module.specifier, stmt.line)
                module.reexports.append(("*", target, "*"))
                continue
            elif isinstance(stmt, ExportNamedDeclaration) and stmt.source is not None:
                target = self._load(stmt.source.value, module.specifier, stmt.line)
                for specifier in stmt.specifiers:
                    module.reexports.append((_module_name(specifier.exported), target, _module_name(specifier.local)))
                continue
            body.append(stmt)
        module.program.body = body
        module.analysis = analyze(module.program)

    def _collect_exports(self, module: Module) -> None:
        """Replace export statements of a module with plain declarations."""
        body = []
        listed = []  # (exported, local name) from export lists
        for stmt in module.program.body:
            if isinstance(stmt, ExportNamedDeclaration):
                if stmt.declaration is None:
                    for specifier in stmt.specifiers:
                        listed.append((_module_name(specifier.exported), specifier.local.name))
                    continue
                declaration = stmt.declaration
                if isinstance(declaration, VariableDeclaration):
                    for declarator in declaration.declarations:
                        for ident in pattern_identifiers(declarator.id):
                            module.exports[ident.name] = ident
                else:
                    module.exports[declaration.id.name] = declaration.id
                body.append(declaration)
            elif isinstance(stmt, ExportDefaultDeclaration):
                declaration = stmt.declaration
                if isinstance(declaration, (FunctionDeclaration, ClassDeclaration)):
                    if declaration.id is None:
                        declaration.id = Identifier(DEFAULT_EXPORT_NAME, line=stmt.line)
                    module.exports["default"] = declaration.id
                    body.append(declaration)
                else:
                    ident = Identifier(DEFAULT_EXPORT_NAME, line=stmt.line)
                    body.append(VariableDeclaration(
                        [VariableDeclarator(ident, declaration)], "let", line=stmt.line
                    ))
                    module.exports["default"] = ident
            else:
                body.append(stmt)
        module.program.body = body
        # Declarations synthesized above need to be part of the analysis
        module.analysis = analyze(module.program)

        for exported, local in listed:
            binding = module.analysis.root.bindings.get(local)
            if binding is None:
                raise BundleError(f'module "{module.specifier}" exports "{local}", which it does not declare')
            module.exports[exported] = binding.identifiers[0]

        for exported, source, imported in module.reexports:
            if imported == "*":
                for name, ident in source.exports.items():
                    if name != "default":
                        module.exports.setdefault(name, ident)
            else:
                module.exports[exported] = self._export_of(source, imported)

    def _export_of(self, module: Module, name: str) -> Identifier:
        try:
            return module.exports[name]
        except KeyError:
            raise BundleError(f'module "{module.specifier}" has no export named "{name}"') from None

    # ---- linking ----

    def _rename_top_level(self, entry: Module) -> None:
        """Give module top-level bindings names nothing else uses."""
        modules = self.order + [entry]
        globals_used: Set[str] = set()
        for module in modules:
            globals_used.update(module.analysis.unresolved)
        # imported names end up as the name of the binding they import
        declared = {
            id(module): {binding.name for binding in module.analysis.all_bindings() if binding.kind != "import"}
            for module in modules
        }
        assigned: Set[str] = set()

        for module in modules:
            others = set(globals_used) | assigned
            for other in modules:
                if other is not module:
                    others |= declared[id(other)]
            for binding in list(module.analysis.root.bindings.values()):
                if binding.kind == "import":
                    continue
                if module is entry and binding.name not in globals_used:
                    assigned.add(binding.name)
                    continue
                if binding.name in others:
                    taken = others | declared[id(module)]
                    counter = 1
                    while f"{binding.name}_m{counter}" in taken:
                        counter += 1
                    new_name = f"{binding.name}_m{counter}"
                    logger.debug("bundle.rename", module=module.specifier, old=binding.name, new=new_name)
                    binding.rename(new_name)
                    declared[id(module)].add(new_name)
                assigned.add(binding.name)

    def _bind_imports(self, module: Module) -> None:
        """Point every imported name at the binding it refers to."""
        root = module.analysis.root
        for declaration, target in module.imports:
            for specifier in declaration.specifiers:
                if isinstance(specifier, ImportDefaultSpecifier):
                    export = self._export_of(target, "default")
                else:
                    export = self._export_of(target, _module_name(specifier.imported))
                binding = root.bindings.get(specifier.local.name)
                if binding is not None and binding.name != export.name:
                    binding.rename(export.name)


def bundle(program: Program, unique_id: str, resolve_module: Optional[ModuleResolver] = None,
           importer: str = "<script>") -> Program:
    """Inline the imports of program, resolving module sources with resolve_module."""
    return Bundler(unique_id, resolve_module).bundle(program, importer)
