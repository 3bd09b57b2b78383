# conftest.py (repo root)
import sys
import pathlib

# add project root to sys.path so tests in subfolders can import the package
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent))

pytest_plugins = ("pytest_asyncio",)
