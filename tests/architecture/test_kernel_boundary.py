"""
Kernel Boundary & Invariants Contract.

Tests that enforce the kernel's architectural boundaries:

1. treasury_kernel/** may NOT import treasury_config or treasury_batch.
   The kernel never depends upward.

2. treasury_kernel.models.ledger (LedgerEntry) may only be imported by the
   ledger service, the ledger selector, the model package and the
   immutability listeners.  Everything else goes through LedgerService.

3. treasury_kernel/domain/** is pure: no ORM or database imports.

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST -- they cannot break anything.
"""

import ast
import glob
from pathlib import Path

from treasury_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

REPO_ROOT = Path(__file__).resolve().parents[2]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under root, relative to the repository root."""
    return sorted(
        str(Path(p).relative_to(REPO_ROOT))
        for p in glob.glob(f"{REPO_ROOT / root}/**/*.py", recursive=True)
    )


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    try:
        source = (REPO_ROOT / filepath).read_text()
        tree = ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(f"{prefix}.")


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """treasury_kernel/** must not import treasury_config or treasury_batch."""

    def test_kernel_does_not_import_forbidden_packages(self):
        violations: list[str] = []

        files = _python_files("treasury_kernel")
        assert files, "treasury_kernel sources not found"
        for filepath in files:
            for lineno, module in _extract_imports(filepath):
                for prefix in FORBIDDEN_KERNEL_IMPORTS:
                    if _matches(module, prefix):
                        violations.append(f"  {filepath}:{lineno} imports '{module}'")

        assert not violations, (
            "Kernel boundary violation -- treasury_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_batch(self):
        violations = [
            f"  {filepath}:{lineno} imports '{module}'"
            for filepath in _python_files("treasury_config")
            for lineno, module in _extract_imports(filepath)
            if _matches(module, "treasury_batch")
        ]
        assert not violations, (
            "treasury_config must not depend on treasury_batch:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Ledger model import gate
# ---------------------------------------------------------------------------

class TestLedgerModelImportGate:
    """Only the ledger service and selector write or read LedgerEntry rows."""

    LEDGER_MODULE = "treasury_kernel.models.ledger"

    ALLOWED_IMPORTERS = {
        "treasury_kernel/services/ledger_service.py",
        "treasury_kernel/selectors/ledger_selector.py",
        "treasury_kernel/models/__init__.py",
        "treasury_kernel/db/immutability.py",
    }

    def test_ledger_model_not_imported_elsewhere(self):
        violations: list[str] = []

        for root in ("treasury_kernel", "treasury_config", "treasury_batch"):
            for filepath in _python_files(root):
                if filepath in self.ALLOWED_IMPORTERS:
                    continue
                for lineno, module in _extract_imports(filepath):
                    if _matches(module, self.LEDGER_MODULE):
                        violations.append(f"  {filepath}:{lineno} imports '{module}'")

        assert not violations, (
            "Ledger boundary violation -- use LedgerService instead of "
            "importing ledger models:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Kernel domain purity
# ---------------------------------------------------------------------------

class TestKernelDomainPurity:
    """treasury_kernel/domain/** must not import ORM or DB packages."""

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "treasury_kernel.db",
        "treasury_kernel.models",
        "treasury_kernel.services",
    )

    def test_domain_no_orm_imports(self):
        violations: list[str] = []

        for filepath in _python_files("treasury_kernel/domain"):
            for lineno, module in _extract_imports(filepath):
                for forbidden in self.FORBIDDEN_MODULES:
                    if _matches(module, forbidden):
                        violations.append(f"  {filepath}:{lineno} imports '{module}'")

        assert not violations, (
            "Domain purity violation -- treasury_kernel/domain/** must not "
            "import ORM or database code:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Invariants declaration
# ---------------------------------------------------------------------------

class TestKernelInvariantsDeclaration:
    def test_invariants_non_empty(self):
        assert len(ALL_KERNEL_INVARIANTS) >= 7

    def test_all_members_declared(self):
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)

    def test_forbidden_imports_declared(self):
        assert set(FORBIDDEN_KERNEL_IMPORTS) == {"treasury_config", "treasury_batch"}
