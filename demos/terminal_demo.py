"""
Terminal Demo: Security Awareness Course

Demonstrates:
- Loading scripts from a directory with a shared registry
- Host functions bound into script variables
- Global variables written from the entry file only
- File transfers and dynamic destinations

Run: python -m demos.terminal_demo [--verbose]
"""

import getpass
import logging
import sys
from datetime import datetime
from pathlib import Path

from bdl import (
    DirectorySource,
    DocumentRegistry,
    FunctionFailure,
    FunctionRegistry,
    ScopeView,
    Session,
    SessionConfig,
    SessionEvent,
)

SCRIPTS_DIR = Path(__file__).parent / "scripts"

COMMON_PASSWORDS = {"password", "123456", "qwerty", "letmein", "admin"}


# ============================================================================
# HOST FUNCTIONS
# ============================================================================

functions = FunctionRegistry()


@functions.function("getUserInput")
def get_user_input(scope: ScopeView):
    # Demo shortcut: reads the terminal directly rather than going through
    # Session.submit_input. A real shell would supply the name itself.
    return [input("Your name: ").strip()]


@functions.function("saveUserName")
def save_user_name(scope: ScopeView):
    name = scope.get("input")
    if not name:
        return [False]
    return [scope.set_global("user_name", name)]


@functions.function("getTime")
def get_time(scope: ScopeView):
    return [datetime.now().strftime("%H:%M")]


@functions.function("analyzePassword")
def analyze_password(scope: ScopeView):
    password = getpass.getpass("Password (not stored): ")
    if not password:
        raise FunctionFailure("no password entered")

    score = 0
    score += len(password) >= 12
    score += any(c.isdigit() for c in password)
    score += any(c.isupper() for c in password) and any(c.islower() for c in password)
    score += any(not c.isalnum() for c in password)

    if password.lower() in COMMON_PASSWORDS or score < 3:
        return ["That password is weak.", "weak"]
    return ["That password is strong.", "strong"]


@functions.function("countAttempt")
def count_attempt(scope: ScopeView):
    attempts = scope.get("attempts") or 0
    return [attempts + 1]


# ============================================================================
# SHELL
# ============================================================================

def main() -> int:
    logging.basicConfig(
        level=logging.INFO if "--verbose" in sys.argv else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    registry = DocumentRegistry(DirectorySource(SCRIPTS_DIR), entry_file="main.bdl")
    for issue in registry.check_links("main.bdl") + registry.check_links("passwords.bdl"):
        if issue.is_error:
            print(f"[link] {issue.file}:{issue.node} -> {issue.destination}: {issue.message}")

    session = Session(registry, functions, SessionConfig(fallback_node="main.bdl:intro"))
    session.events.subscribe(
        SessionEvent.FILE_CHANGED,
        lambda event: print(f"--- {event['file']} ---"),
    )

    output = session.start()
    while True:
        if output.text:
            print(output.text)
        if output.exited:
            return 0
        try:
            line = input("> ")
        except (EOFError, KeyboardInterrupt):
            print()
            return 0
        output = session.submit_input(line)


if __name__ == "__main__":
    sys.exit(main())
