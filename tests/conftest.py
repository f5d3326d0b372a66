# tests/conftest.py
import pytest
from loguru import logger

from folderplan.config.loader import reset_config_cache
from folderplan.core.models import TreeNode


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keeps config and log files out of the real user directory."""
    home = tmp_path / "_folderplan_home"
    monkeypatch.setenv("FOLDERPLAN_HOME", str(home))
    monkeypatch.setenv("FOLDERPLAN_LOG_TO_FILE", "false")
    reset_config_cache()
    yield home
    reset_config_cache()
    logger.remove() # Drop sinks bound to streams captured during the test


def file_node(name, size=0):
    return TreeNode(name=name, is_dir=False, size=size)

def dir_node(name, *children):
    return TreeNode(name=name, is_dir=True, children=list(children))


@pytest.fixture
def sample_tree():
    """
    docs/ (readme.md 5, notes.txt 3)
    src/ (main.py 10, docs/ (x.txt 1))
    top.txt 2
    """
    return [
        dir_node("docs", file_node("readme.md", 5), file_node("notes.txt", 3)),
        dir_node("src", file_node("main.py", 10), dir_node("docs", file_node("x.txt", 1))),
        file_node("top.txt", 2),
    ]


@pytest.fixture
def project_dir(tmp_path):
    """A real folder: proj/{a.txt, docs/readme.md, docs/old/}"""
    root = tmp_path / "proj"
    (root / "docs" / "old").mkdir(parents=True)
    (root / "a.txt").write_text("hello")
    (root / "docs" / "readme.md").write_text("# readme")
    return root
