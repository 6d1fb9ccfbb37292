"""
Tests for JSONFileStore

The store degrades to its default on missing or malformed files and
writes atomically.
"""
import json
import os
import shutil
import stat
import tempfile
from pathlib import Path

import pytest

from storage.json_store import JSONFileStore, StoreError


class TestJSONFileStore:
    """Test suite for JSONFileStore"""

    @pytest.fixture
    def temp_dir(self):
        """Create temporary directory for documents"""
        temp = Path(tempfile.mkdtemp())
        yield temp
        if temp.exists():
            shutil.rmtree(temp)

    def test_missing_file_returns_default_copy(self, temp_dir):
        """A missing file reads as a fresh copy of the default"""
        store = JSONFileStore(temp_dir / "doc.json", default={"items": []})
        first = store.read()
        first["items"].append(1)

        assert store.read() == {"items": []}

    def test_malformed_file_returns_default(self, temp_dir):
        """Corrupt JSON degrades to the default instead of raising"""
        path = temp_dir / "doc.json"
        path.write_text("{not json", encoding="utf-8")
        store = JSONFileStore(path, default=[])

        assert store.read() == []

    def test_wrong_shape_returns_default(self, temp_dir):
        """A document of the wrong top-level type reads as the default"""
        path = temp_dir / "doc.json"
        path.write_text(json.dumps({"a": 1}), encoding="utf-8")
        store = JSONFileStore(path, default=[])

        assert store.read() == []

    def test_write_then_read(self, temp_dir):
        """Written documents are read back unchanged, indented by 2"""
        path = temp_dir / "nested" / "doc.json"
        store = JSONFileStore(path, default={})
        store.write({"name": "Notes", "count": 2})

        assert store.read() == {"name": "Notes", "count": 2}
        assert '\n  "name"' in path.read_text(encoding="utf-8")

    def test_write_leaves_no_temp_files(self, temp_dir):
        """Only the target file remains after a write"""
        store = JSONFileStore(temp_dir / "doc.json", default={})
        store.write({"a": 1})
        store.write({"a": 2})

        assert sorted(p.name for p in temp_dir.iterdir()) == ["doc.json"]

    def test_file_mode_applied(self, temp_dir):
        """file_mode sets permission bits on the written file"""
        path = temp_dir / "secret.json"
        JSONFileStore(path, default={}, file_mode=0o600).write({"k": "v"})

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_unserializable_document_raises(self, temp_dir):
        """Values json cannot encode raise StoreError and keep the old file"""
        store = JSONFileStore(temp_dir / "doc.json", default={})
        store.write({"ok": True})

        with pytest.raises(StoreError):
            store.write({"bad": object()})
        assert store.read() == {"ok": True}

    def test_transaction_writes_on_exit(self, temp_dir):
        """Changes made inside a transaction are persisted"""
        store = JSONFileStore(temp_dir / "doc.json", default={})
        with store.transaction() as document:
            document["added"] = 1

        assert store.read() == {"added": 1}

    def test_transaction_discards_on_error(self, temp_dir):
        """An exception inside a transaction leaves the file untouched"""
        store = JSONFileStore(temp_dir / "doc.json", default={})
        store.write({"before": 1})

        with pytest.raises(RuntimeError):
            with store.transaction() as document:
                document["after"] = 2
                raise RuntimeError("boom")
        assert store.read() == {"before": 1}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
