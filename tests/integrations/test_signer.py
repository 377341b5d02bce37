"""Tests for signer factory loading."""

from __future__ import annotations

import pytest

from rebalancer.core.exceptions import ValidationError
from rebalancer.execution.ports import SigningProvider
from rebalancer.integrations.signer import load_signer


class TestLoadSigner:
    def test_loads_factory(self) -> None:
        signer = load_signer("tests.conftest:FakeSigner")
        assert isinstance(signer, SigningProvider)

    @pytest.mark.parametrize("path", ["no_colon", ":factory", "module:"])
    def test_bad_format(self, path: str) -> None:
        with pytest.raises(ValidationError, match="package.module:callable"):
            load_signer(path)

    def test_missing_module(self) -> None:
        with pytest.raises(ValidationError, match="Cannot load"):
            load_signer("nonexistent_signer_pkg:make")

    def test_not_a_signer(self) -> None:
        with pytest.raises(ValidationError, match="did not return"):
            load_signer("builtins:object")
