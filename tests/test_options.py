"""SpawnOptions tests."""

from __future__ import annotations

import pytest

from cli_spawn.options import SpawnOptions


class TestDefaults:
    """Test effective defaults of unspecified options."""

    def test_unspecified(self):
        options = SpawnOptions()
        assert options.use_shell is False
        assert options.should_reject is True
        assert options.should_exit is True
        assert options.should_trim_end is True
        assert options.decode_json is False

    def test_explicit_false(self):
        options = SpawnOptions(reject=False, exit=False, trim_end=False)
        assert options.should_reject is False
        assert options.should_exit is False
        assert options.should_trim_end is False


class TestCoerce:
    """Test building options from mappings."""

    def test_none(self):
        assert SpawnOptions.coerce(None) == SpawnOptions()

    def test_instance_is_returned_as_is(self):
        options = SpawnOptions(json=True)
        assert SpawnOptions.coerce(options) is options

    def test_mapping_with_unknown_keys(self):
        options = SpawnOptions.coerce({"cwd": "/tmp", "umask": 0o22, "extra": {"user": "nobody"}})
        assert options.cwd == "/tmp"
        assert dict(options.extra) == {"umask": 0o22, "user": "nobody"}

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            SpawnOptions.coerce(["cwd"])


class TestMerge:
    """Test option layering."""

    def test_specified_fields_win(self):
        base = SpawnOptions(cwd="/a", json=True, reject=True)
        merged = base.merge({"cwd": "/b", "reject": False})
        assert merged.cwd == "/b"
        assert merged.json is True
        assert merged.reject is False

    def test_unspecified_fields_defer(self):
        base = SpawnOptions(cwd="/a")
        assert base.merge(SpawnOptions()) is base
        assert base.merge(None) is base

    def test_extra_merges_key_wise(self):
        base = SpawnOptions.coerce({"umask": 0o22, "user": "a"})
        merged = base.merge({"user": "b"})
        assert dict(merged.extra) == {"umask": 0o22, "user": "b"}

    def test_merge_does_not_mutate(self):
        base = SpawnOptions(cwd="/a")
        base.merge({"cwd": "/b"})
        assert base.cwd == "/a"
