import os
import sys
from pathlib import Path

import pytest

# Ensure bdl modules can be imported
sys.path.append(os.getcwd())

from bdl.core.events import EventBus
from bdl.session.dispatcher import FunctionRegistry
from bdl.session.registry import DocumentRegistry
from bdl.session.sources import DirectorySource, MemorySource

SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "demos" / "scripts"

HEADER = """\
# Topic: Test Dialog
# Description: A test dialog file
# Author: Test Author
# Version: 1.0
"""


@pytest.fixture
def make_script():
    """Build script text with a valid metadata header."""
    def build(body: str, required: str | None = None) -> str:
        header = HEADER
        if required is not None:
            header += f"# Required: {required}\n"
        return header + "\n" + body
    return build


@pytest.fixture
def memory_registry(make_script):
    """Build a registry over in-memory scripts: {name: body}."""
    def build(scripts: dict[str, str], entry_file: str = "main.bdl", required: dict | None = None):
        required = required or {}
        source = MemorySource({
            name: make_script(body, required.get(name))
            for name, body in scripts.items()
        })
        return DocumentRegistry(source, entry_file=entry_file)
    return build


@pytest.fixture
def event_bus():
    """Fresh EventBus for each test."""
    return EventBus()


@pytest.fixture
def scripts_dir():
    return SCRIPTS_DIR


@pytest.fixture
def registry(scripts_dir):
    """Registry over the sample course scripts."""
    return DocumentRegistry(DirectorySource(scripts_dir), entry_file="main.bdl")


@pytest.fixture
def typed_names():
    """Names the simulated getUserInput hands out, in order."""
    return ["Alex"]


@pytest.fixture
def host_functions(typed_names):
    """Host functions used by the sample course scripts."""
    functions = FunctionRegistry()

    @functions.function("getUserInput")
    def get_user_input(scope):
        return [typed_names.pop(0) if typed_names else ""]

    @functions.function("saveUserName")
    def save_user_name(scope):
        name = scope.get("input")
        if not name:
            return [False]
        return [scope.set_global("user_name", name)]

    @functions.function("getTime")
    def get_time(scope):
        return ["12:00"]

    @functions.function("analyzePassword")
    def analyze_password(scope):
        return ["That password is strong.", "strong"]

    @functions.function("countAttempt")
    def count_attempt(scope):
        return [(scope.get("attempts") or 0) + 1]

    return functions
