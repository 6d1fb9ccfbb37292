"""
Tests for SecretStore
"""
import json
import os
import shutil
import stat
import tempfile
from pathlib import Path

import pytest

from storage.secrets import SECRETS_FILE, SecretStore, is_secret_ref, ref_key, secret_key, secret_ref


class TestSecretStore:
    """Test suite for SecretStore"""

    @pytest.fixture
    def temp_dir(self):
        """Create temporary data directory"""
        temp = Path(tempfile.mkdtemp())
        yield temp
        if temp.exists():
            shutil.rmtree(temp)

    @pytest.fixture
    def secrets(self, temp_dir):
        return SecretStore(temp_dir)

    def test_keys_and_refs(self):
        key = secret_key("supabase", "Notes", "pat")

        assert key == "supabase/Notes/pat"
        assert secret_ref(key) == "secret:supabase/Notes/pat"
        assert is_secret_ref(secret_ref(key))
        assert not is_secret_ref("sbp_plain")
        assert not is_secret_ref("")
        assert ref_key(secret_ref(key)) == key

    def test_set_get_delete(self, secrets):
        secrets.set("supabase/Notes/pat", "sbp_token")

        assert secrets.get("supabase/Notes/pat") == "sbp_token"
        assert secrets.delete("supabase/Notes/pat") is True
        assert secrets.get("supabase/Notes/pat") is None
        assert secrets.delete("supabase/Notes/pat") is False

    def test_file_is_owner_only(self, secrets, temp_dir):
        """secrets.json is written with mode 0600"""
        secrets.set("revenuecat/Notes/pat", "sk_live")
        path = temp_dir / SECRETS_FILE

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert json.loads(path.read_text(encoding="utf-8")) == {"revenuecat/Notes/pat": "sk_live"}

    def test_unchanged_value_not_rewritten(self, secrets, temp_dir):
        secrets.set("supabase/Notes/pat", "sbp_token")
        path = temp_dir / SECRETS_FILE
        before = path.stat().st_mtime_ns
        os.utime(path, ns=(before - 10_000_000, before - 10_000_000))

        secrets.set("supabase/Notes/pat", "sbp_token")

        assert path.stat().st_mtime_ns == before - 10_000_000

    def test_corrupt_file_reads_empty(self, secrets, temp_dir):
        (temp_dir / SECRETS_FILE).write_text("not json", encoding="utf-8")

        assert secrets.get("supabase/Notes/pat") is None
        assert secrets.keys() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
