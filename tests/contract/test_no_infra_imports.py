import ast
import pathlib


def test_no_infrastructure_imports_in_api():
    root = pathlib.Path("src")
    for api_py in root.glob("**/api/**/*.py"):
        tree = ast.parse(api_py.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            if isinstance(node, ast.ImportFrom):
                if node.module and ".infrastructure" in node.module:
                    raise AssertionError(f"Infrastructure import in API file: {api_py} -> from {node.module} import ...")
            if isinstance(node, ast.Import):
                for n in node.names:
                    if "infrastructure" in n.name:
                        raise AssertionError(f"Infrastructure import in API file: {api_py} -> import {n.name}")


def test_domain_does_not_import_sqlalchemy():
    root = pathlib.Path("src")
    for domain_py in root.glob("**/domain/**/*.py"):
        tree = ast.parse(domain_py.read_text(encoding="utf-8"))
        for node in ast.walk(tree):
            names = []
            if isinstance(node, ast.ImportFrom) and node.module:
                names = [node.module]
            elif isinstance(node, ast.Import):
                names = [n.name for n in node.names]
            for name in names:
                assert not name.startswith("sqlalchemy"), f"{domain_py} imports {name}"
