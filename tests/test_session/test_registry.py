import threading
from collections import Counter

import pytest
from bdl.core.errors import ParseError, ParseErrorKind, ReferenceError, ReferenceErrorKind
from bdl.session.registry import DocumentRegistry
from bdl.session.sources import DirectorySource, MemorySource, ScriptNotFound


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

def test_directory_source(scripts_dir):
    source = DirectorySource(scripts_dir)
    assert "@start" in source.read("main.bdl")

    with pytest.raises(ScriptNotFound):
        source.read("missing.bdl")


def test_directory_source_stays_inside_root(tmp_path):
    root = tmp_path / "scripts"
    root.mkdir()
    (tmp_path / "secret.bdl").write_text("secret", encoding="utf-8")

    with pytest.raises(ScriptNotFound):
        DirectorySource(root).read("../secret.bdl")


def test_memory_source():
    source = MemorySource({"a.bdl": "text"})
    source.add("b.bdl", "more")

    assert "b.bdl" in source
    assert source.read("a.bdl") == "text"
    with pytest.raises(ScriptNotFound):
        source.read("c.bdl")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def test_load_entry_file_with_cyclic_dependency(registry):
    main = registry.load("main.bdl")

    assert main.declares_global
    assert registry.loaded == ["main.bdl", "passwords.bdl"]
    # passwords.bdl requires main.bdl back; both stay single instances
    assert registry.get("passwords.bdl") is registry.load("passwords.bdl")
    assert registry.load("main.bdl") is main


def test_only_entry_file_may_declare_globals(memory_registry):
    registry = memory_registry({
        "main.bdl": "@start\nHi\n",
        "other.bdl": "$global_vars: {\n    score: 0\n}\n@start\nHi\n",
    })
    registry.load("main.bdl")

    with pytest.raises(ParseError) as info:
        registry.load("other.bdl")
    assert info.value.kind is ParseErrorKind.GLOBAL_OUTSIDE_ENTRY
    assert "other.bdl" not in registry


def test_unknown_file(memory_registry):
    registry = memory_registry({"main.bdl": "@start\nHi\n"})

    with pytest.raises(ReferenceError) as info:
        registry.load("nowhere.bdl")
    assert info.value.kind is ReferenceErrorKind.UNKNOWN_FILE


def test_missing_dependency_evicts_document(memory_registry):
    registry = memory_registry(
        {"main.bdl": "@start\nHi\n"},
        required={"main.bdl": "gone.bdl"},
    )

    with pytest.raises(ReferenceError) as info:
        registry.load("main.bdl")
    assert info.value.kind is ReferenceErrorKind.MISSING_DEPENDENCY
    assert "gone.bdl" in info.value.message
    assert "main.bdl" not in registry
    assert registry.get("main.bdl") is None


def test_failed_load_evicts_whole_cycle(memory_registry):
    registry = memory_registry(
        {"main.bdl": "@start\nHi\n", "b.bdl": "@start\nHi\n"},
        required={"main.bdl": "b.bdl, missing.bdl", "b.bdl": "main.bdl"},
    )

    with pytest.raises(ReferenceError) as info:
        registry.load("main.bdl")
    assert info.value.kind is ReferenceErrorKind.MISSING_DEPENDENCY

    assert registry.loaded == []
    assert registry.get("b.bdl") is None

    # b.bdl requires main.bdl, which still can't load
    with pytest.raises(ReferenceError) as info:
        registry.load("b.bdl")
    assert info.value.kind is ReferenceErrorKind.MISSING_DEPENDENCY
    assert registry.loaded == []


def test_unparseable_dependency_is_missing(memory_registry):
    registry = memory_registry(
        {"main.bdl": "@start\nHi\n", "broken.bdl": "@start\n{oops}\n"},
        required={"main.bdl": "broken.bdl"},
    )

    with pytest.raises(ReferenceError) as info:
        registry.load("main.bdl")
    assert info.value.kind is ReferenceErrorKind.MISSING_DEPENDENCY
    assert isinstance(info.value.__cause__, ParseError)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def test_resolve(registry):
    node = registry.resolve("passwords.bdl", "password_quiz")
    assert node.name == "password_quiz"
    assert len(node.options) == 2


def test_resolve_unknown_node(registry):
    with pytest.raises(ReferenceError) as info:
        registry.resolve("main.bdl", "nonexistent")
    assert info.value.kind is ReferenceErrorKind.UNKNOWN_NODE


def test_resolve_unparseable_file_is_unknown(memory_registry):
    registry = memory_registry({"main.bdl": "@start\nHi\n"})
    registry.source.add("bad.bdl", "no metadata here")

    with pytest.raises(ReferenceError) as info:
        registry.resolve("bad.bdl", "start")
    assert info.value.kind is ReferenceErrorKind.UNKNOWN_FILE


def test_documents_iterates_loaded(registry):
    registry.load("main.bdl")
    assert [doc.name for doc in registry.documents()] == ["main.bdl", "passwords.bdl"]


# ---------------------------------------------------------------------------
# Link check
# ---------------------------------------------------------------------------

def test_sample_scripts_link_cleanly(registry):
    for name in ("main.bdl", "passwords.bdl"):
        assert [issue for issue in registry.check_links(name) if issue.is_error] == []


def test_dynamic_destinations_are_reported_unchecked(registry):
    issues = registry.check_links("passwords.bdl")
    assert len(issues) == 1
    assert issues[0].node == "analyze"
    assert issues[0].destination == "${next}"
    assert not issues[0].is_error


def test_check_links_reports_bad_destinations(memory_registry):
    registry = memory_registry(
        {
            "main.bdl": (
                "@start\n"
                "{a} -> nowhere\n"
                "{b} -> [extra.bdl:start]\n"
                "{c} -> [lesson.bdl:missing]\n"
                "{d} -> [main.bdl:start]\n"
                "{e} -> [${module}:start]\n"
            ),
            "lesson.bdl": "@start\nHi\n",
            "extra.bdl": "@start\nHi\n",
        },
        required={"main.bdl": "lesson.bdl"},
    )

    issues = {issue.destination: issue for issue in registry.check_links("main.bdl")}

    assert issues["nowhere"].kind is ReferenceErrorKind.UNKNOWN_NODE
    assert issues["[extra.bdl:start]"].kind is ReferenceErrorKind.UNDECLARED_DEPENDENCY
    assert issues["[lesson.bdl:missing]"].kind is ReferenceErrorKind.UNKNOWN_NODE
    assert "[main.bdl:start]" not in issues
    assert issues["[${module}:start]"].kind is None
    assert len(issues) == 4


class CountingSource(MemorySource):
    """MemorySource that records how often each script is read."""

    def __init__(self, scripts):
        super().__init__(scripts)
        self.reads = Counter()
        self._reads_lock = threading.Lock()

    def read(self, name):
        with self._reads_lock:
            self.reads[name] += 1
        return super().read(name)


def test_concurrent_first_load_reads_each_script_once(make_script):
    source = CountingSource({
        "main.bdl": make_script("@start\nHi\n{go} -> [lesson.bdl:start]\n", "lesson.bdl"),
        "lesson.bdl": make_script("@start\nLesson\n{back} -> [main.bdl:start]\n", "main.bdl"),
    })
    registry = DocumentRegistry(source, entry_file="main.bdl")

    thread_count = 8
    barrier = threading.Barrier(thread_count)
    results = [None] * thread_count
    errors = []

    def worker(index):
        try:
            barrier.wait()
            document = registry.load("main.bdl")
            # Anything visible must already have its dependencies loaded
            results[index] = (document, registry.get("lesson.bdl"))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(thread_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert source.reads == {"main.bdl": 1, "lesson.bdl": 1}

    main, lesson = results[0]
    assert lesson is not None
    for document, dependency in results:
        assert document is main
        assert dependency is lesson
    assert registry.loaded == ["lesson.bdl", "main.bdl"]


def test_registry_requires_entry_file_name():
    registry = DocumentRegistry(MemorySource(), entry_file="course.bdl")
    assert registry.entry_file == "course.bdl"
    assert registry.loaded == []
